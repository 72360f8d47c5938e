"""Integration tests for ConditioningPipeline."""

from concurrent.futures import Future

import pytest
import numpy as np
from numpy.testing import assert_allclose, assert_array_equal
from PIL import Image

from hdr_exposure_stack import (
    AlignmentError, ConditioningConfig, ConditioningPipeline, EmptyStackError,
    FusionConfig, KindConflict, Region, StackKind, UncalibratedExposure,
)

pytestmark = pytest.mark.integration


@pytest.fixture
def ldr_frames(scene):
    """Three 8-bit exposures of the test scene (dark to bright)."""
    return [np.rint(scene * k * 255).astype(np.uint8) for k in (1, 2, 4)]


class TestLoading:
    """Test batch loading with partial and unordered delivery."""

    def test_unordered_load(self, pipeline, ldr_frames):
        items = [
            pipeline.make_item(2, 1 / 15, ldr_frames[2], 'c.jpg'),
            pipeline.make_item(0, 1 / 60, ldr_frames[0], 'a.jpg'),
            pipeline.make_item(1, 1 / 30, ldr_frames[1], 'b.jpg'),
        ]

        accepted = pipeline.load(items)

        assert accepted == [2, 0, 1]
        assert [item.filename for item in pipeline.stack] == ['a.jpg', 'b.jpg', 'c.jpg']
        assert pipeline.stack.kind is StackKind.LDR
        assert not pipeline.loading_error
        assert pipeline.history.operations() == ['load', 'normalize_ev']

    def test_invalid_and_mismatched_items_recorded(self, pipeline, ldr_frames):
        broken = pipeline.make_item(1, 1 / 30, ldr_frames[1], 'broken.jpg')
        broken.valid = False
        small = pipeline.make_item(2, 1 / 15, ldr_frames[2][:40], 'small.jpg')

        accepted = pipeline.load([
            pipeline.make_item(0, 1 / 60, ldr_frames[0], 'a.jpg'), broken, small
        ])

        assert accepted == [0]
        assert pipeline.loading_error
        assert [e.filename for e in pipeline.load_errors] == ['broken.jpg', 'small.jpg']
        assert "invalid size" in pipeline.load_errors[1].reason
        assert len(pipeline.stack) == 1

    def test_kind_conflict_stops_batch(self, pipeline, ldr_frames, scene):
        with pytest.raises(KindConflict):
            pipeline.load([
                pipeline.make_item(0, 1 / 60, ldr_frames[0]),
                pipeline.make_item(1, 1 / 30, scene * 65535.0),
                pipeline.make_item(2, 1 / 15, ldr_frames[2]),
            ])

        assert len(pipeline.stack) == 1
        assert len(pipeline.load_errors) == 1

    def test_make_item_variants(self, pipeline, ldr_frames, scene):
        from_pil = pipeline.make_item(0, 0.01, Image.fromarray(ldr_frames[0]))
        from_planes = pipeline.make_item(1, 0.01, [scene[..., c] * 65535.0 for c in range(3)])

        assert from_pil.kind is StackKind.LDR
        assert from_planes.kind is StackKind.MDR
        assert_allclose(from_planes.representation.read(), scene, rtol=1e-6)

    def test_out_of_range_evs_normalized(self, pipeline, ldr_frames):
        pipeline.load([
            pipeline.make_item(0, 2.0 ** 12, ldr_frames[0]),
            pipeline.make_item(1, 2.0 ** 14, ldr_frames[1]),
        ])

        assert_allclose([item.ev for item in pipeline.stack], [8.0, 10.0])


class TestCalibration:
    """Test manual EV assignment for exposures without metadata."""

    def test_pending_then_manual_ev(self, pipeline, ldr_frames):
        pipeline.load([
            pipeline.make_item(0, -1, ldr_frames[0], 'a.jpg'),
            pipeline.make_item(1, 1 / 30, ldr_frames[1], 'b.jpg'),
        ])
        assert pipeline.calibrator.pending == ['a.jpg']
        assert not pipeline.is_calibrated

        pipeline.set_ev(0, -6.0)

        assert pipeline.calibrator.pending == []
        assert pipeline.is_calibrated
        assert pipeline.stack[0].exposure_time == pytest.approx(1 / 64)

    def test_create_hdr_requires_calibration(self, pipeline, ldr_frames):
        pipeline.load([pipeline.make_item(0, -1, ldr_frames[0])])

        with pytest.raises(UncalibratedExposure):
            pipeline.create_hdr(lambda fusion_input: None)


class TestGeometry:
    """Test alignment, shift and crop through the pipeline."""

    @pytest.fixture
    def loaded(self, pipeline, ldr_frames):
        pipeline.load([
            pipeline.make_item(i, t, frame)
            for i, (t, frame) in enumerate(zip((1 / 60, 1 / 30, 1 / 15), ldr_frames))
        ])
        return pipeline

    def test_align_with_callable(self, loaded, ldr_frames):
        offsets = loaded.align(lambda stack: [(0, 0), (1, 0), (0, -2)])

        assert offsets == [(0, 0), (1, 0), (0, -2)]
        assert_array_equal(loaded.stack[1].representation.data[:, 1:], ldr_frames[1][:, :-1])
        assert loaded.history.last('align').parameters['offsets'] == [[0, 0], [1, 0], [0, -2]]

    def test_align_with_future(self, loaded):
        future = Future()
        future.set_result([(0, 0), (0, 0), (3, 3)])

        loaded.align(future)

        assert not loaded.stack[2].representation.data[:3].any()

    def test_aligner_failure(self, loaded, ldr_frames):
        def broken(stack):
            raise RuntimeError("feature matching failed")

        with pytest.raises(AlignmentError, match="feature matching failed") as excinfo:
            loaded.align(broken)

        assert isinstance(excinfo.value.original_error, RuntimeError)
        assert_array_equal(loaded.stack[0].representation.data, ldr_frames[0])

    def test_wrong_offset_count(self, loaded):
        with pytest.raises(AlignmentError):
            loaded.align(lambda stack: [(1, 1)])

    def test_crop_after_alignment(self, loaded):
        loaded.align(lambda stack: [(0, 0), (2, 0), (0, 2)])

        loaded.crop(Region(2, 2, 78, 78))

        assert loaded.stack.size == (78, 78)
        assert loaded.history.operations()[-1] == 'crop'

    def test_remove(self, loaded):
        removed = loaded.remove(1)

        assert removed.index == 1
        assert len(loaded.stack) == 2


class TestAntiGhosting:
    """Test anti-ghosting and fusion hand-off end to end."""

    def test_auto_antighost_and_fusion(self, make_radiance_stack, paint, ghost_region):
        pipeline = ConditioningPipeline(ConditioningConfig(grid_size=4, max_workers=2))
        source = make_radiance_stack()
        paint(source, 2, ghost_region, (0.95, 0.02, 0.02))
        pipeline.load(list(source))

        report = pipeline.auto_antighost(threshold=0.5)

        assert report.reference == 2
        assert report.flagged_patches() == [(1, 1)]

        received = []
        result = pipeline.create_hdr(lambda fusion_input: received.append(fusion_input) or 'radiance')

        assert result == 'radiance'
        fusion_input = received[0]
        assert fusion_input.kind is StackKind.MDR
        assert fusion_input.config == FusionConfig.profile(1)
        assert_allclose(fusion_input.exposure_times, [1.0, 2.0, 4.0])
        assert pipeline.history.operations()[-2:] == ['normalize_ev', 'create_hdr']

    def test_manual_antighost(self, pipeline, ldr_frames):
        pipeline.load([
            pipeline.make_item(0, 1 / 60, ldr_frames[0]),
            pipeline.make_item(1, 1 / 30, ldr_frames[1]),
        ])
        pipeline.mask(1).paint(Region(0, 0, 10, 10))

        blended = pipeline.manual_antighost(0)

        assert blended == 100
        assert pipeline.history.last('manual_antighost').notes == "100 pixels blended"

    def test_preview(self, pipeline, ldr_frames):
        pipeline.load([pipeline.make_item(0, 1 / 60, ldr_frames[0])])

        preview = pipeline.preview(0)

        assert preview.size == (80, 80)
        assert_array_equal(np.array(preview), ldr_frames[0])

    def test_use_profile(self, pipeline):
        config = pipeline.use_profile(6)

        assert config == FusionConfig('gaussian', 'gamma', 'debevec')
        assert pipeline.fusion_config is config

    def test_create_hdr_empty(self, pipeline):
        with pytest.raises(EmptyStackError):
            pipeline.create_hdr(lambda fusion_input: None)
