"""
Pixel-level comparison of two renderings of the same page.
"""
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class RegionBox:
    """Bounding box of a group of changed pixels, in pixel coordinates."""
    x: int
    y: int
    width: int
    height: int
    pixel_count: int


def pixel_differs(base: bytes, marked: bytes, offset: int, threshold: int) -> bool:
    """Sum of absolute RGB differences at ``offset`` exceeds the threshold."""
    return (abs(base[offset] - marked[offset])
            + abs(base[offset + 1] - marked[offset + 1])
            + abs(base[offset + 2] - marked[offset + 2])) > threshold


def difference_mask(base: bytes, marked: bytes, width: int, height: int,
                    channels: int = 3, stride: Optional[int] = None,
                    threshold: int = 30) -> bytearray:
    """
    Mark the pixels that differ between two images of equal size.

    Args:
        base: Samples of the unmarked page
        marked: Samples of the marked page
        width: Image width in pixels
        height: Image height in pixels
        channels: Bytes per pixel (at least 3, RGB first)
        stride: Bytes per row, defaults to ``width * channels``
        threshold: Minimum summed RGB difference for a pixel to count

    Returns:
        One byte per pixel, 1 where the images differ
    """
    stride = stride or width * channels
    if len(base) < stride * height or len(marked) < stride * height:
        raise ValueError("Sample buffers are smaller than the image size")

    mask = bytearray(width * height)
    for y in range(height):
        row = y * stride
        for x in range(width):
            if pixel_differs(base, marked, row + x * channels, threshold):
                mask[y * width + x] = 1
    return mask


def find_regions(mask: bytearray, width: int, height: int,
                 min_pixels: int = 50, padding: int = 10) -> List[RegionBox]:
    """
    Group changed pixels into 8-connected regions.

    Regions with ``min_pixels`` pixels or fewer are dropped as noise. Boxes
    are padded and clipped to the image.
    """
    visited = bytearray(width * height)
    regions: List[RegionBox] = []

    for start in range(width * height):
        if not mask[start] or visited[start]:
            continue

        min_x = max_x = start % width
        min_y = max_y = start // width
        count = 0
        stack = [start]
        visited[start] = 1

        while stack:
            idx = stack.pop()
            x, y = idx % width, idx // width
            count += 1
            min_x, max_x = min(min_x, x), max(max_x, x)
            min_y, max_y = min(min_y, y), max(max_y, y)

            for dy in (-1, 0, 1):
                ny = y + dy
                if ny < 0 or ny >= height:
                    continue
                for dx in (-1, 0, 1):
                    nx = x + dx
                    if (dx or dy) and 0 <= nx < width:
                        n = ny * width + nx
                        if mask[n] and not visited[n]:
                            visited[n] = 1
                            stack.append(n)

        if count > min_pixels:
            left = max(0, min_x - padding)
            top = max(0, min_y - padding)
            right = min(width, max_x + 1 + padding)
            bottom = min(height, max_y + 1 + padding)
            regions.append(RegionBox(left, top, right - left, bottom - top, count))

    return regions
