"""RGB <-> HSL conversion used by ghost detection and blending.

All components are expected in the normalized range [0, 1]. Both directions
accept Python scalars or numpy arrays of matching shape and are fully
vectorized, so a whole patch or image converts in one call.

Degenerate colors:
- lightness <= 0 (pure black): hue and saturation are 0.
- zero chroma (gray): saturation is 0 and hue keeps its initial value 0.
  Callers must not rely on hue for gray pixels.

Hue is expressed as a fraction of a full turn in [0, 1]. A pure red can come
out as exactly 1.0; ``hsl_to_rgb`` wraps it back onto the first sextant.
"""

from __future__ import annotations
from typing import Tuple, Union
import numpy as np

ArrayLike = Union[float, np.ndarray]


def _unwrap(*arrays):
    """Return plain floats when every input was a scalar."""
    if all(np.ndim(a) == 0 for a in arrays):
        return tuple(float(a) for a in arrays)
    return arrays


def rgb_to_hsl(r: ArrayLike, g: ArrayLike, b: ArrayLike) -> Tuple[ArrayLike, ArrayLike, ArrayLike]:
    """Convert RGB components in [0, 1] to (hue, saturation, lightness).

    Args:
        r: Red component(s)
        g: Green component(s)
        b: Blue component(s)

    Returns:
        Tuple (h, s, l). Floats for scalar input, arrays otherwise.

    Example:
        >>> rgb_to_hsl(1.0, 0.5, 0.0)
        (0.08333333333333333, 1.0, 0.5)
    """
    r, g, b = np.broadcast_arrays(
        np.asarray(r, dtype=np.float64),
        np.asarray(g, dtype=np.float64),
        np.asarray(b, dtype=np.float64),
    )

    v = np.maximum(np.maximum(r, g), b)
    m = np.minimum(np.minimum(r, g), b)
    l = (v + m) / 2.0
    vm = v - m

    chromatic = (l > 0.0) & (vm > 0.0)

    denom = np.where(l <= 0.5, v + m, 2.0 - v - m)
    s = np.zeros_like(l)
    np.divide(vm, denom, out=s, where=chromatic & (denom > 0.0))

    safe_vm = np.where(chromatic, vm, 1.0)
    r2 = (v - r) / safe_vm
    g2 = (v - g) / safe_vm
    b2 = (v - b) / safe_vm

    h = np.select(
        [r == v, g == v],
        [
            np.where(g == m, 5.0 + b2, 1.0 - g2),
            np.where(b == m, 1.0 + r2, 3.0 - b2),
        ],
        default=np.where(r == m, 3.0 + g2, 5.0 - r2),
    ) / 6.0
    h = np.where(chromatic, h, 0.0)

    return _unwrap(h, s, l)


def hsl_to_rgb(h: ArrayLike, s: ArrayLike, l: ArrayLike) -> Tuple[ArrayLike, ArrayLike, ArrayLike]:
    """Convert (hue, saturation, lightness) back to RGB components.

    Args:
        h: Hue in [0, 1]
        s: Saturation
        l: Lightness

    Returns:
        Tuple (r, g, b). Floats for scalar input, arrays otherwise.
    """
    h, s, l = np.broadcast_arrays(
        np.asarray(h, dtype=np.float64),
        np.asarray(s, dtype=np.float64),
        np.asarray(l, dtype=np.float64),
    )

    v = np.where(l <= 0.5, l * (1.0 + s), l + s - l * s)
    positive = v > 0.0
    m = l + l - v
    sv = np.divide(v - m, v, out=np.zeros_like(v), where=positive)

    h6 = h * 6.0
    sextant = np.floor(h6)
    fract = h6 - sextant
    sextant = np.mod(sextant, 6.0).astype(np.int64)

    vsf = v * sv * fract
    mid1 = m + vsf
    mid2 = v - vsf

    sextants = [sextant == k for k in range(6)]
    r = np.select(sextants, [v, mid2, m, m, mid1, v])
    g = np.select(sextants, [mid1, v, v, mid2, m, m])
    b = np.select(sextants, [m, m, mid1, v, v, mid2])

    r = np.where(positive, r, l)
    g = np.where(positive, g, l)
    b = np.where(positive, b, l)

    return _unwrap(r, g, b)


def rgb_array_to_hsl(rgb: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Convert an (..., 3) RGB array to separate h, s, l arrays."""
    if rgb.shape[-1] != 3:
        raise ValueError(f"Expected RGB array with shape (..., 3), got {rgb.shape}")
    return rgb_to_hsl(rgb[..., 0], rgb[..., 1], rgb[..., 2])


def hsl_to_rgb_array(h: np.ndarray, s: np.ndarray, l: np.ndarray) -> np.ndarray:
    """Convert h, s, l arrays back into a stacked (..., 3) RGB array."""
    r, g, b = hsl_to_rgb(h, s, l)
    return np.stack([r, g, b], axis=-1)


def lightness(rgb: np.ndarray) -> np.ndarray:
    """HSL lightness of an (..., 3) RGB array: (max + min) / 2."""
    if rgb.shape[-1] != 3:
        raise ValueError(f"Expected RGB array with shape (..., 3), got {rgb.shape}")
    return (rgb.max(axis=-1) + rgb.min(axis=-1)) / 2.0


def average_lightness(rgb: np.ndarray) -> float:
    """Mean HSL lightness over every pixel of an (..., 3) RGB array."""
    if rgb.size == 0:
        return 0.0
    return float(np.mean(lightness(rgb)))


def max_lightness(rgb: np.ndarray) -> float:
    """Maximum HSL lightness over every pixel of an (..., 3) RGB array."""
    if rgb.size == 0:
        return 0.0
    return float(np.max(lightness(rgb)))


def scale_lightness(
    rgb: np.ndarray,
    factor: float,
    ceiling: float = 1.0,
    max_value: float = 1.0
) -> np.ndarray:
    """Rescale the HSL lightness of RGB pixels, keeping hue and saturation.

    Lightness is multiplied by ``factor`` and clamped to ``ceiling``; the
    resulting RGB values are clamped to [0, max_value].

    Args:
        rgb: (..., 3) array of normalized RGB values
        factor: Lightness multiplier
        ceiling: Upper bound applied to the scaled lightness
        max_value: Upper bound applied to the resulting RGB components

    Returns:
        New (..., 3) array with rescaled lightness
    """
    h, s, l = rgb_array_to_hsl(rgb)
    l = np.minimum(l * factor, ceiling)
    out = hsl_to_rgb_array(h, s, l)
    return np.clip(out, 0.0, max_value)
