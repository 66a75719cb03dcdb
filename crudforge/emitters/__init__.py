# File: crudforge/emitters/__init__.py
"""
crudforge - Artifact Emitters
==============================
One emitter per artifact group, run by the orchestrator in this order:

    ModelEmitter → DTOEmitter → ControllerEmitter → RouteEmitter → ClientEmitter
"""

from __future__ import annotations

from typing import List

from crudforge.emitters.base import EmitContext, Emitter, EmitResult, SectionEdit
from crudforge.emitters.client import ClientEmitter
from crudforge.emitters.controller import ControllerEmitter
from crudforge.emitters.dto import DTOEmitter
from crudforge.emitters.model import ModelEmitter
from crudforge.emitters.routes import RouteEmitter


def default_emitters() -> List[Emitter]:
    """Fresh emitter instances in emission order."""
    return [ModelEmitter(), DTOEmitter(), ControllerEmitter(), RouteEmitter(), ClientEmitter()]


__all__: List[str] = [
    "EmitContext",
    "EmitResult",
    "Emitter",
    "SectionEdit",
    "ModelEmitter",
    "DTOEmitter",
    "ControllerEmitter",
    "RouteEmitter",
    "ClientEmitter",
    "default_emitters",
]
