# tests/test_package.py
"""
Tests for the package namespace: re-exports and metadata helpers.
"""

import hotproc


class TestPackage:

    def test_core_names_are_reexported(self):
        for name in ("Features", "FeatureStore", "CallGraph", "PropagationEngine",
                     "CallGraphAugmenter", "StaticAnalyzer", "analyze", "load_program"):
            assert name in hotproc.__all__
            assert hasattr(hotproc, name)

    def test_submodules_are_attributes(self):
        assert hotproc.features.Features is hotproc.Features
        assert "propagation" in hotproc.list_submodules()

    def test_package_info(self):
        info = hotproc.package_info()
        assert info["package"] == "hotproc"
        assert info["version"] == hotproc.__version__
        assert set(hotproc.list_submodules()) <= set(info["loaded_submodules"])
