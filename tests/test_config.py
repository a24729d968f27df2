"""Tests for settings and tolerances in tpiga.config."""

from __future__ import annotations

import numpy as np
import pytest

from tpiga.config import (
    Settings,
    get_default_tolerance,
    get_settings,
    get_strict_tolerance,
    set_settings,
    settings,
)


class TestSettings:
    """Tests for the global settings."""

    def test_defaults(self) -> None:
        current = Settings()
        assert current.check_preconditions
        assert current.nurbs_enabled
        assert current.num_sub_elem == 3  # noqa: PLR2004

    def test_context_manager_restores(self) -> None:
        before = get_settings()
        with settings(nurbs_enabled=False, num_sub_elem=1) as inside:
            assert get_settings() is inside
            assert not inside.nurbs_enabled
            assert inside.num_sub_elem == 1
        assert get_settings() == before

    def test_context_manager_restores_on_error(self) -> None:
        before = get_settings()
        with pytest.raises(RuntimeError), settings(check_preconditions=False):
            raise RuntimeError
        assert get_settings() == before

    def test_set_settings_returns_previous(self) -> None:
        previous = set_settings(check_preconditions=False)
        try:
            assert previous.check_preconditions
            assert not get_settings().check_preconditions
        finally:
            set_settings(check_preconditions=previous.check_preconditions)
        assert get_settings() == previous

    def test_invalid_values(self) -> None:
        with pytest.raises(ValueError, match="num_sub_elem must be in"):
            Settings(num_sub_elem=4)
        with pytest.raises(TypeError):
            set_settings(unknown=True)


class TestTolerance:
    """Tests for the per-dtype tolerances."""

    @pytest.mark.parametrize(
        ("dtype", "default", "strict"),
        [(np.float32, 1e-6, 1e-7), (np.float64, 1e-12, 1e-15), ("float64", 1e-12, 1e-15)],
    )
    def test_values(self, dtype: np.dtype | str | type, default: float, strict: float) -> None:
        assert get_default_tolerance(dtype) == default
        assert get_strict_tolerance(dtype) == strict

    def test_default_dtype(self) -> None:
        assert get_default_tolerance() == get_default_tolerance(np.float64)

    def test_unsupported_dtype(self) -> None:
        with pytest.raises(ValueError, match="Unsupported dtype"):
            get_default_tolerance(np.int32)
