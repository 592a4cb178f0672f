"""Reconcile 3D viewer representations with the filtered graph.

The synchronizer owns every representation it installs on the viewer and is
the only code that adds or removes them. Each ``sync`` call is gated by a
signature of everything that determines the viewer state; an unchanged
signature means no viewer calls at all.

Reconciliation always computes the complete next state first, then retracts
the previous highlight and distance representations, then installs the new
ones. Viewer failures are logged and leave the affected representation
uninstalled; they are never raised to the caller.
"""
from __future__ import annotations
from dataclasses import dataclass, field
import threading
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from loguru import logger

from kinograph.utils.config import ViewerConfig
from kinograph.utils.hash_utils import stable_hash
from kinograph.visualization.palette import get_color


class ViewerComponent(Protocol):
    """The narrow capability the synchronizer needs from a 3D viewer."""

    def add_representation(self, kind: str, params: Dict[str, Any]) -> Any:
        ...

    def remove_representation(self, handle: Any) -> None:
        ...

    def load_structure(self, structure_id: str, source: Any) -> Any:
        ...


@dataclass
class SyncRequest:
    selection: Optional[str]
    pairs_by_type: Dict[str, Sequence[Tuple[str, str]]] = field(default_factory=dict)
    filters: Dict[str, Any] = field(default_factory=dict)
    link_count: int = 0
    mode: str = "atom"

    def signature(self) -> str:
        return stable_hash({
            "sele": self.selection or "",
            "pairs": {t: [list(p) for p in pairs] for t, pairs in self.pairs_by_type.items()},
            "filters": self.filters,
            "links": self.link_count,
            "mode": self.mode,
        }, length=16)


@dataclass
class SyncOutcome:
    # synced | unchanged | skipped
    status: str
    signature: Optional[str] = None
    highlight: bool = False
    distance_types: List[str] = field(default_factory=list)
    errors: int = 0

    @property
    def changed(self) -> bool:
        return self.status == "synced"


class ViewerSynchronizer:
    def __init__(self, viewer: Optional[ViewerComponent] = None, config: Optional[ViewerConfig] = None):
        self.config = config or ViewerConfig()
        self.viewer = viewer
        self.structure_id: Optional[str] = None
        self._base = None
        self._highlight = None
        self._distances: Dict[str, Any] = {}
        self._last_signature: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def last_signature(self) -> Optional[str]:
        return self._last_signature

    @property
    def installed_distance_types(self) -> List[str]:
        return list(self._distances)

    @property
    def has_highlight(self) -> bool:
        return self._highlight is not None

    def _reset(self) -> None:
        self.structure_id = None
        self._base = None
        self._highlight = None
        self._distances = {}
        self._last_signature = None

    def attach(self, viewer: ViewerComponent) -> None:
        """Mount a viewer; the next ``sync`` performs a full reconciliation."""
        with self._lock:
            self.viewer = viewer
            self._reset()

    def detach(self) -> None:
        with self._lock:
            self.viewer = None
            self._reset()

    # ------------------------------------------------------------ viewer calls

    def _add(self, kind: str, params: Dict[str, Any]) -> Any:
        try:
            return self.viewer.add_representation(kind, params)
        except Exception as e:
            logger.warning(f"viewer_sync: add_representation({kind}) failed: {e}")
            return None

    def _remove(self, handle: Any) -> bool:
        try:
            self.viewer.remove_representation(handle)
            return True
        except Exception as e:
            logger.warning(f"viewer_sync: remove_representation failed: {e}")
            return False

    # ------------------------------------------------------------ structure

    def load_structure(self, structure_id: str, source: Any = None) -> bool:
        """Load a structure into the viewer once; returns True if it was loaded now."""
        with self._lock:
            if self.viewer is None:
                logger.debug(f"viewer_sync: no viewer mounted; not loading {structure_id}")
                return False
            if self.structure_id == structure_id:
                return False
            for handle in self._owned_handles():
                self._remove(handle)
            self._base = None
            self._highlight = None
            self._distances = {}
            self._last_signature = None
            try:
                self.viewer.load_structure(structure_id, source)
            except Exception as e:
                logger.warning(f"viewer_sync: failed to load structure {structure_id}: {e}")
                self.structure_id = None
                return False
            self.structure_id = structure_id
            self._ensure_base_locked()
            return True

    def ensure_base(self) -> bool:
        with self._lock:
            return self._ensure_base_locked()

    def _ensure_base_locked(self) -> bool:
        if self.viewer is None or self.structure_id is None or self._base is not None:
            return False
        self._base = self._add(self.config.base_kind, dict(self.config.base_params))
        return self._base is not None

    def _owned_handles(self) -> List[Any]:
        handles = [self._base, self._highlight, *self._distances.values()]
        return [h for h in handles if h is not None]

    # ------------------------------------------------------------ sync

    def distance_params(self, pairs_by_type: Dict[str, Sequence[Tuple[str, str]]]) -> Dict[str, Dict[str, Any]]:
        out: Dict[str, Dict[str, Any]] = {}
        for t, pairs in pairs_by_type.items():
            if not pairs:
                continue
            out[t] = {
                "atomPair": [list(p) for p in pairs],
                "colorScheme": "uniform",
                "colorValue": get_color(t),
                "linewidth": self.config.distance_linewidth,
                "labelVisible": False,
            }
        return out

    def sync(self, request: SyncRequest) -> SyncOutcome:
        with self._lock:
            if self.viewer is None:
                logger.debug("viewer_sync: viewer not mounted; sync skipped")
                return SyncOutcome("skipped")

            signature = request.signature()
            if signature == self._last_signature:
                return SyncOutcome("unchanged", signature, self._highlight is not None, list(self._distances))

            # full next state before touching the viewer
            selection = request.selection or None
            highlight_params = {**self.config.highlight_params, "sele": selection} if selection else None
            distance_params = self.distance_params(request.pairs_by_type) if selection else {}

            errors = 0
            if self._highlight is not None:
                errors += not self._remove(self._highlight)
                self._highlight = None
            for handle in self._distances.values():
                errors += not self._remove(handle)
            self._distances = {}

            if highlight_params is not None:
                self._highlight = self._add(self.config.highlight_kind, highlight_params)
                errors += self._highlight is None
            for t, params in distance_params.items():
                handle = self._add("distance", params)
                if handle is None:
                    errors += 1
                    continue
                self._distances[t] = handle

            # a failed install is retried on the next call
            self._last_signature = signature if not errors else None
            logger.debug(
                f"viewer_sync: synced sig={signature} highlight={self._highlight is not None} "
                f"distances={list(self._distances)} errors={errors}"
            )
            return SyncOutcome("synced", signature, self._highlight is not None, list(self._distances), errors)

    def clear(self) -> None:
        """Retract highlight and distance representations (base stays)."""
        with self._lock:
            if self.viewer is None:
                return
            if self._highlight is not None:
                self._remove(self._highlight)
                self._highlight = None
            for handle in self._distances.values():
                self._remove(handle)
            self._distances = {}
            self._last_signature = None
