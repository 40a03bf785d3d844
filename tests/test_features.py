# tests/test_features.py
"""
Tests for Features records and the local feature extractor.
"""

import pytest

from hotproc.errors import IssueKind, IssueLog
from hotproc.features import WEIGHT_BASE, Features, LocalFeatureExtractor, loop_weight
from hotproc.model import InMemoryProgram, Procedure
from hotproc.store import FeatureStore
from tests.conftest import (
    LEAF,
    assign_invoke,
    invoke,
    leaf_class,
    make_class,
    make_program,
    method,
    plain,
)


class _CountingProgram(InMemoryProgram):
    """Records which bodies were requested."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.body_requests = []

    def body(self, procedure):
        self.body_requests.append(procedure.signature)
        return super().body(procedure)


class _BrokenDepthsProgram(InMemoryProgram):
    """Fails to compute loop depths for one procedure."""

    def __init__(self, broken, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.broken = broken

    def loop_nest_depths(self, procedure):
        if procedure.signature == self.broken:
            raise RuntimeError("loop analysis exploded")
        return super().loop_nest_depths(procedure)


# ── Features ─────────────────────────────────────────────────────

class TestFeatures:

    def test_loop_weight(self):
        assert WEIGHT_BASE == 10
        assert [loop_weight(d) for d in range(4)] == [1, 10, 100, 1000]

    def test_loop_weight_rejects_negative_depth(self):
        with pytest.raises(ValueError):
            loop_weight(-1)

    def test_add_features_at_depth_zero(self):
        f = Features(None, 1, 1)
        f.add_features_from(Features(None, 2, 5))
        assert f.as_tuple() == (3, 6)

    def test_add_features_scales_only_approx(self):
        f = Features(None, 1, 1)
        f.add_features_from(Features(None, 2, 5), call_depth=2)
        assert f.static_invocations == 3
        assert f.approx_dynamic_invocations == 1 + 500

    def test_copy_is_independent(self):
        f = Features(None, 1, 2)
        c = f.copy()
        c.add_features_from(Features(None, 1, 1))
        assert f.as_tuple() == (1, 2)
        assert c.as_tuple() == (2, 3)

    def test_serialize(self):
        assert Features(None, 7, 120).serialize() == "7 | 120"

    def test_as_dict(self):
        proc = Procedure("app.A", "void f()")
        assert Features(proc, 1, 10).as_dict() == {
            "procedure": "<app.A: void f()>",
            "static_invocations": 1,
            "approx_dynamic_invocations": 10,
        }


# ── LocalFeatureExtractor ────────────────────────────────────────

class TestLocalFeatureExtractor:

    def test_call_outside_loops(self):
        proc = method("app.A", "void a()", [plain(), invoke(LEAF)])
        program = make_program(make_class("app.A", [proc]), leaf_class())
        assert LocalFeatureExtractor(program).extract(proc).as_tuple() == (1, 1)

    def test_call_in_two_nested_loops(self):
        proc = method(
            "app.A", "void a()",
            [plain(), plain(), invoke(LEAF)],
            loops=[[0, 1, 2], [1, 2]],
        )
        program = make_program(make_class("app.A", [proc]), leaf_class())
        assert LocalFeatureExtractor(program).extract(proc).as_tuple() == (1, 100)

    def test_mixed_depths(self):
        proc = method(
            "app.A", "void a()",
            [invoke(LEAF), plain(), invoke(LEAF), invoke(LEAF)],
            loops=[[1, 2, 3], [2]],
        )
        program = make_program(make_class("app.A", [proc]), leaf_class())
        # depth 0, depth 2, depth 1
        assert LocalFeatureExtractor(program).extract(proc).as_tuple() == (3, 111)

    def test_nested_assignment_counts_once(self):
        proc = method("app.A", "void a()", [assign_invoke(LEAF, nested=True)])
        program = make_program(make_class("app.A", [proc]), leaf_class())
        assert LocalFeatureExtractor(program).extract(proc).as_tuple() == (1, 1)

    def test_unresolved_call_site_still_counts(self):
        proc = method("app.A", "void a()", [invoke(LEAF, targets=())])
        program = make_program(make_class("app.A", [proc]))
        assert LocalFeatureExtractor(program).extract(proc).as_tuple() == (1, 1)

    def test_library_body_is_never_requested(self):
        lib = method("java.util.Lib", "void f()", [invoke(LEAF)])
        program = _CountingProgram([make_class("java.util.Lib", [lib])])
        features = LocalFeatureExtractor(program).extract(lib)
        assert features.as_tuple() == (0, 0)
        assert program.body_requests == []

    def test_phantom_is_zero_and_recorded(self):
        proc = method("app.A", "void abstractThing()")
        program = make_program(make_class("app.A", [proc]))
        issues = IssueLog()
        features = LocalFeatureExtractor(program, issues).extract(proc)
        assert features.as_tuple() == (0, 0)
        assert features.procedure is proc
        [issue] = issues.by_kind(IssueKind.UNRESOLVABLE_BODY)
        assert issue.procedure == proc.signature
        assert issue.phase == "extract"

    def test_internal_failure_is_recorded_not_raised(self):
        proc = method("app.A", "void a()", [invoke(LEAF)], loops=[[0]])
        program = _BrokenDepthsProgram(proc.signature, [make_class("app.A", [proc])])
        issues = IssueLog()
        features = LocalFeatureExtractor(program, issues).extract(proc)
        assert features.as_tuple() == (0, 0)
        [issue] = issues.by_kind(IssueKind.EXTRACTION_FAILURE)
        assert "RuntimeError" in issue.message

    def test_extract_all_skips_library_procedures(self):
        app = method("app.A", "void a()", [invoke(LEAF)])
        lib = method("java.util.Lib", "void f()", [])
        program = make_program(
            make_class("app.A", [app]),
            make_class("java.util.Lib", [lib]),
        )
        extractor = LocalFeatureExtractor(program)
        store = FeatureStore(extractor)
        assert extractor.extract_all([app, lib], store) == 1
        assert store.local(app).as_tuple() == (1, 1)
        assert store.local(lib) is None
