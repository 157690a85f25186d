"""
Tests for the command line batch builder.

Run with: pytest src/tests/test_build_instance.py -v
"""

import sys
from pathlib import Path
from unittest import mock

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

pytest.importorskip("pyscipopt")

import build_instance
from instances.common import Settings
from instances.errors import InfeasibleRelaxation, NoIntegerSolution


class TestBuild:
    """Test that one bad input file does not stop the batch"""

    @pytest.fixture
    def settings(self):
        return Settings(inputs=(Path("bad.lp"), Path("good.lp")), show_progress=False)

    def test_failing_file_is_skipped(self, settings):
        def fake_instance_from_file(path, oracle, **kwargs):
            if path.name == "bad.lp":
                raise NoIntegerSolution("no integer point")
            return object()

        with mock.patch.object(
            build_instance, "instance_from_file", side_effect=fake_instance_from_file
        ), mock.patch.object(build_instance, "describe", return_value="instance"):
            assert build_instance.build(settings) == 1

    def test_every_file_failing(self, settings):
        with mock.patch.object(
            build_instance,
            "instance_from_file",
            side_effect=InfeasibleRelaxation("infeasible"),
        ):
            assert build_instance.build(settings) == 0

    def test_all_files_built(self, settings):
        with mock.patch.object(
            build_instance, "instance_from_file", return_value=object()
        ), mock.patch.object(build_instance, "describe", return_value="instance"):
            assert build_instance.build(settings) == 2
