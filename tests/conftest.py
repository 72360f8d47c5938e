"""Pytest configuration and fixtures for hdr_exposure_stack tests."""

import pytest
import numpy as np

from hdr_exposure_stack.preprocessing import (
    ByteImage, ExposureItem, ExposureStack, RadianceChannels, Region
)


# ============================================================================
# Test Data Fixtures
# ============================================================================

@pytest.fixture
def scene():
    """Smooth green-dominant scene, normalized, shape (80, 80, 3).

    Green is the strict maximum everywhere, so every pixel has a well-defined
    hue close to 1/3.
    """
    y, x = np.mgrid[0:80, 0:80]
    r = 0.05 + 0.1 * x / 80.0
    g = np.full((80, 80), 0.15)
    b = 0.05 + 0.1 * y / 80.0
    return np.stack([r, g, b], axis=-1)


@pytest.fixture
def byte_pixels():
    """Random 8-bit RGB image (48, 64, 3) with values in [30, 200]."""
    rng = np.random.default_rng(42)
    return rng.integers(30, 201, size=(48, 64, 3), dtype=np.uint8)


@pytest.fixture
def make_radiance_stack(scene):
    """Factory for radiance stacks of ``scene`` scaled by exposure time.

    Exposure times must be powers of two so scaled exposures are exact.
    """
    def _make(times=(1.0, 2.0, 4.0)):
        stack = ExposureStack()
        for index, t in enumerate(times):
            native = scene * 65535.0 * t
            representation = RadianceChannels.from_array(native)
            stack.append(ExposureItem(index, t, representation, filename=f"exp{index}.tif"))
        return stack
    return _make


@pytest.fixture
def make_byte_stack(byte_pixels):
    """Factory for LDR stacks holding copies of ``byte_pixels``."""
    def _make(times=(1 / 60, 1 / 60, 1 / 60)):
        stack = ExposureStack()
        for index, t in enumerate(times):
            stack.append(ExposureItem(index, t, ByteImage(byte_pixels), filename=f"img{index}.jpg"))
        return stack
    return _make


@pytest.fixture
def ghost_region():
    """Patch (1, 1) of a 4x4 grid over an 80x80 image."""
    return Region(20, 20, 20, 20)


def paint_patch(stack, position, region, color):
    """Overwrite ``region`` of one exposure with a constant normalized color."""
    block = np.tile(np.asarray(color, dtype=np.float64), (region.height, region.width, 1))
    stack[position].representation.write(block, region)


@pytest.fixture
def paint():
    """Helper painting a constant color into a region of one exposure."""
    return paint_patch


@pytest.fixture
def ghosted_stack(make_radiance_stack, ghost_region):
    """Radiance stack whose brightest exposure has a red object in patch (1, 1)."""
    stack = make_radiance_stack()
    paint_patch(stack, 2, ghost_region, (0.95, 0.02, 0.02))
    return stack


# ============================================================================
# Component Fixtures
# ============================================================================

@pytest.fixture
def calibrator():
    """ExposureCalibrator instance."""
    from hdr_exposure_stack.preprocessing import ExposureCalibrator
    return ExposureCalibrator()


@pytest.fixture
def detector():
    """GhostDetector with a 4x4 grid (20x20 patches on the test scene)."""
    from hdr_exposure_stack.processing import GhostDetector
    return GhostDetector(grid_size=4)


@pytest.fixture
def blender():
    """Sequential Blender instance."""
    from hdr_exposure_stack.processing import Blender
    return Blender()


@pytest.fixture
def history_tracker():
    """HistoryTracker instance."""
    from hdr_exposure_stack.postprocessing import HistoryTracker
    return HistoryTracker()


@pytest.fixture
def pipeline():
    """ConditioningPipeline with a 4x4 grid."""
    from hdr_exposure_stack import ConditioningConfig, ConditioningPipeline
    return ConditioningPipeline(ConditioningConfig(grid_size=4))


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
