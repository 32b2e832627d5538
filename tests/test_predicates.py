"""Unit tests for inclusion predicates (projectforge.predicates)."""

from __future__ import annotations

import pytest

from projectforge.predicates import (
    ALWAYS,
    AllOf,
    AnyOf,
    AxisIn,
    Not,
    PredicateError,
    parse_predicate,
    referenced_axes,
)


class TestParsePredicate:
    @pytest.mark.unit
    @pytest.mark.parametrize("raw", [None, True, {}])
    def test_empty_forms_mean_always(self, raw):
        assert parse_predicate(raw) is ALWAYS

    @pytest.mark.unit
    def test_single_value(self):
        pred = parse_predicate({"logger": "zap"})
        assert pred == AxisIn("logger", ("zap",))

    @pytest.mark.unit
    def test_value_list(self):
        pred = parse_predicate({"database-driver": ["postgres", "mysql"]})
        assert pred == AxisIn("database-driver", ("postgres", "mysql"))

    @pytest.mark.unit
    def test_several_keys_are_a_conjunction(self):
        pred = parse_predicate({"framework": "gin", "logger": "zap"})
        assert isinstance(pred, AllOf)
        assert len(pred.operands) == 2

    @pytest.mark.unit
    def test_nested_combinators(self):
        pred = parse_predicate(
            {"any": [{"logger": "zap"}, {"all": [{"framework": "gin"}, {"not": {"logger": "slog"}}]}]}
        )
        assert isinstance(pred, AnyOf)
        assert isinstance(pred.operands[1], AllOf)
        assert isinstance(pred.operands[1].operands[1], Not)

    @pytest.mark.unit
    def test_scalars_are_coerced_to_strings(self):
        assert parse_predicate({"cgo": True}) == AxisIn("cgo", ("true",))
        assert parse_predicate({"version": 2}) == AxisIn("version", ("2",))
        assert parse_predicate({"auth-type": None}) == AxisIn("auth-type", ("none",))

    @pytest.mark.unit
    def test_already_parsed_predicate_passes_through(self):
        pred = AxisIn("logger", ("zap",))
        assert parse_predicate(pred) is pred

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "raw",
        [
            "logger=zap",
            ["logger"],
            {"all": {"logger": "zap"}},
            {"any": []},
            {"logger": []},
            {"logger": {"nested": "mapping"}},
        ],
    )
    def test_invalid_forms_raise(self, raw):
        with pytest.raises(PredicateError):
            parse_predicate(raw)


class TestEvaluate:
    @pytest.mark.unit
    def test_axis_in(self):
        pred = parse_predicate({"logger": ["zap", "zerolog"]})
        assert pred.evaluate({"logger": "zap"})
        assert pred.evaluate({"logger": "zerolog"})
        assert not pred.evaluate({"logger": "slog"})

    @pytest.mark.unit
    def test_none_matches_unset_axis(self):
        pred = parse_predicate({"database-driver": "none"})
        assert pred.evaluate({"database-driver": None})
        assert pred.evaluate({})
        assert not pred.evaluate({"database-driver": "postgres"})

    @pytest.mark.unit
    def test_unset_axis_does_not_match_a_value(self):
        pred = parse_predicate({"database-driver": "postgres"})
        assert not pred.evaluate({"database-driver": None})

    @pytest.mark.unit
    def test_not(self):
        pred = parse_predicate({"not": {"auth-type": "none"}})
        assert pred.evaluate({"auth-type": "jwt"})
        assert not pred.evaluate({"auth-type": None})

    @pytest.mark.unit
    def test_all_and_any(self):
        both = parse_predicate({"framework": "gin", "logger": "zap"})
        either = parse_predicate({"any": [{"framework": "gin"}, {"logger": "zap"}]})
        selections = {"framework": "gin", "logger": "slog"}
        assert not both.evaluate(selections)
        assert either.evaluate(selections)

    @pytest.mark.unit
    def test_always(self):
        assert ALWAYS.evaluate({})


class TestReferences:
    @pytest.mark.unit
    def test_references_lists_axis_value_pairs(self):
        pred = parse_predicate({"all": [{"logger": ["zap", "slog"]}, {"not": {"framework": "gin"}}]})
        assert list(pred.references()) == [("logger", "zap"), ("logger", "slog"), ("framework", "gin")]

    @pytest.mark.unit
    def test_referenced_axes_is_distinct_and_ordered(self):
        pred = parse_predicate({"any": [{"logger": "zap"}, {"framework": "gin"}, {"logger": "slog"}]})
        assert referenced_axes(pred) == ["logger", "framework"]

    @pytest.mark.unit
    def test_always_references_nothing(self):
        assert referenced_axes(ALWAYS) == []

    @pytest.mark.unit
    def test_describe(self):
        assert parse_predicate({"logger": "zap"}).describe() == "logger=zap"
        assert parse_predicate({"logger": ["zap", "slog"]}).describe() == "logger in (zap, slog)"
        assert parse_predicate({"not": {"logger": "zap"}}).describe() == "not (logger=zap)"
