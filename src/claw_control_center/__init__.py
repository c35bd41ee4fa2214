"""Provide the public `claw_control_center` package exports."""

from __future__ import annotations

from .service import ControlCenter

__all__ = ["ControlCenter"]
