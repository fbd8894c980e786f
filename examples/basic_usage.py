#!/usr/bin/env python3
"""
Example demonstrating the single-array and composite viewers.

Builds a synthetic localization-microscopy stack (z, y, x) plus two extra
channels, walks through the programmatic API and saves a snapshot of each
configuration.
"""

import os

import numpy as np

from smlm_viewer import get_keybindings, open_viewer, print_data_info

# create output directory in current folder
output_dir = os.path.join(os.path.dirname(__file__), "output")
if not os.path.exists(output_dir):
    os.makedirs(output_dir)
os.chdir(output_dir)


def make_blobs(shape, n_blobs, sigma, seed):
    """Gaussian spots on a noisy background, shape (z, y, x)."""
    rng = np.random.default_rng(seed)
    z, y, x = np.indices(shape, dtype=np.float64)
    data = rng.normal(10, 2, size=shape)
    for _ in range(n_blobs):
        cz, cy, cx = (rng.uniform(0, s) for s in shape)
        amp = rng.uniform(50, 500)
        r2 = (z - cz) ** 2 + (y - cy) ** 2 + (x - cx) ** 2
        data += amp * np.exp(-r2 / (2 * sigma**2))
    return np.maximum(data, 0)


def demo_single_viewer():
    """Demonstrate slicing, zoom and intensity mappings on one array."""
    print("=== Single Array Demo ===")

    stack = make_blobs((20, 96, 128), n_blobs=40, sigma=3.0, seed=42)
    print_data_info(stack)

    viewer = open_viewer(stack, dim_names=("z", "y", "x"), title="Single array demo", auto_show=False)

    print("\nKeyboard controls:")
    for action, key in get_keybindings().items():
        print(f"  {key:>6}  {action}")
    print("  digits  two digits in quick succession pick the displayed dims")

    print("\nProgrammatic control:")
    viewer.set_slice_index(1, 10)
    print(f"  - Moved to z = {viewer.slice_indices[0].value}")

    viewer.zoom_in()
    viewer.pan(1, 0)
    print(f"  - Zoom {viewer.zoom}x, center {viewer.view_center.value}")

    for _ in range(len(viewer.mappings)):
        name = viewer.mapping.value.name
        viewer.save_current_view(f"single_{name}.png")
        viewer.cycle_mapping()

    viewer.set_display_dims((1, 3))
    print(f"  - Now showing dims {viewer.display_dims.value}, slider over {viewer.slider_dims.value}")
    viewer.save_current_view("single_zx.png")

    print("\nCall viewer.show() to see the interactive version")
    return viewer


def demo_composite_viewer():
    """Demonstrate additive channel blending."""
    print("\n=== Composite Demo ===")

    channels = tuple(make_blobs((20, 96, 128), n_blobs=25, sigma=2.5, seed=s) for s in (1, 2, 3))
    print_data_info(channels)

    viewer = open_viewer(
        channels,
        channel_names=("dna", "actin", "tubulin"),
        title="Composite demo",
        auto_show=False,
    )

    print(f"\nChannel colors: {viewer.channel_colors}")
    viewer.save_current_view("composite_all.png")

    viewer.toggle_channel(2)
    print(f"  - Hid channel 2; status: {viewer.status_text.value}")
    viewer.save_current_view("composite_no_actin.png")

    viewer.cycle_stretch()
    print(f"  - Stretch mode: {viewer.stretch.value}")
    viewer.save_current_view("composite_slice_stretch.png")

    print("\nCall viewer.show() to see the interactive version")
    return viewer


def main():
    """Run all demos."""
    print("SMLM Viewer - Demonstration")
    print("=" * 50)

    single_viewer = demo_single_viewer()
    composite_viewer = demo_composite_viewer()

    print("\n" + "=" * 50)
    print("Demos completed!")

    print("\nInteractive features:")
    print("  - Hover to read pixel values")
    print("  - Use sliders or j/l to move through slices")
    print("  - i/o to zoom, e/s/d/f to pan, r to reset")
    print("  - c/m/g to cycle colormap, mapping and stretch")

    return {
        "single_viewer": single_viewer,
        "composite_viewer": composite_viewer,
    }


if __name__ == "__main__":
    viewers = main()

    viewers["single_viewer"].show()
    viewers["composite_viewer"].show()
