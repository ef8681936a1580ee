"""
LinguaComic — Force Layout.

Time-stepped force simulation for the concept graph, following d3-force:
  many-body repulsion + link springs + centering + collision,
  alpha cooling, velocity decay, phyllotaxis initial placement.

Each tick: alpha cools → forces adjust velocities → positions integrate.
Pinned (dragged) nodes sit at their pin and are skipped by integration;
every other node keeps moving.

The layout is ephemeral. It is built from a Graph's nodes and links and
never written back to the Graph.
"""

import logging
import math
from typing import Optional

import numpy as np

from linguacomic.models import Graph

logger = logging.getLogger(__name__)

# d3-force defaults
ALPHA_MIN = 0.001
ALPHA_DECAY = 1 - ALPHA_MIN ** (1 / 300)
VELOCITY_DECAY = 0.4
INITIAL_RADIUS = 10.0
INITIAL_ANGLE = math.pi * (3 - math.sqrt(5))
DISTANCE_MIN2 = 1.0

# Values the concept graph view uses
LINK_DISTANCE = 120.0
CHARGE_STRENGTH = -300.0
COLLIDE_RADIUS = 40.0
NODE_RADIUS = 25.0  # Drawn circle; collision radius leaves room for labels
DRAG_ALPHA_TARGET = 0.3


class ForceLayout:
    """Physics layout over one snapshot of a Graph."""

    def __init__(
        self,
        graph: Graph,
        width: float = 800.0,
        height: float = 500.0,
        link_distance: float = LINK_DISTANCE,
        charge_strength: float = CHARGE_STRENGTH,
        collide_radius: float = COLLIDE_RADIUS,
        seed: Optional[int] = None,
    ):
        self.width = width
        self.height = height
        self.center = np.array([width / 2, height / 2], dtype=float)
        self.link_distance = link_distance
        self.charge_strength = charge_strength
        self.collide_radius = collide_radius

        self.alpha = 1.0
        self.alpha_target = 0.0
        self.ticks = 0
        self._rng = np.random.default_rng(seed)

        self.node_ids = [n.id for n in graph.nodes]
        # Ids can collide mid-edit; the first node with an id owns it
        self._index: dict[str, int] = {}
        for i, node_id in enumerate(self.node_ids):
            self._index.setdefault(node_id, i)

        count = len(self.node_ids)
        self.positions = np.zeros((count, 2), dtype=float)
        self.velocities = np.zeros((count, 2), dtype=float)
        self._pins = np.full((count, 2), np.nan)
        self._dragging: set[int] = set()

        # Resolve link endpoints; dangling links stay listed but unresolved
        self._link_ends: list[tuple[Optional[int], Optional[int]]] = [
            (self._index.get(link.source_id), self._index.get(link.target_id))
            for link in graph.links
        ]
        springs = [
            (s, t) for s, t in self._link_ends
            if s is not None and t is not None and s != t
        ]
        dangling = sum(1 for s, t in self._link_ends if s is None or t is None)
        if dangling:
            logger.debug(f"Layout skipping {dangling} dangling link(s)")

        self._sources = np.array([s for s, _ in springs], dtype=int)
        self._targets = np.array([t for _, t in springs], dtype=int)
        degree = np.zeros(count, dtype=float)
        np.add.at(degree, self._sources, 1)
        np.add.at(degree, self._targets, 1)
        if springs:
            src_deg = degree[self._sources]
            tgt_deg = degree[self._targets]
            self._link_strength = 1.0 / np.minimum(src_deg, tgt_deg)
            self._link_bias = src_deg / (src_deg + tgt_deg)
        else:
            self._link_strength = np.zeros(0)
            self._link_bias = np.zeros(0)

        self._place_initial()

    # ============================================================
    # Simulation
    # ============================================================

    @property
    def is_settled(self) -> bool:
        return self.alpha < ALPHA_MIN

    def tick(self):
        """Advance the simulation by one step."""
        self.alpha += (self.alpha_target - self.alpha) * ALPHA_DECAY

        if len(self.node_ids):
            self._apply_links()
            self._apply_charge()
            self._apply_center()
            self._apply_collide()
            self._integrate()
        self.ticks += 1

    def run(self, max_ticks: int = 300) -> int:
        """Tick until cooled or out of budget. Returns ticks taken."""
        taken = 0
        while taken < max_ticks and not self.is_settled:
            self.tick()
            taken += 1
        return taken

    def kinetic_energy(self) -> float:
        return float((self.velocities ** 2).sum())

    # ============================================================
    # Dragging
    # ============================================================

    def drag_start(self, node_id: str) -> bool:
        """Pin a node where it is and reheat the simulation."""
        index = self._index.get(node_id)
        if index is None:
            return False
        self._dragging.add(index)
        self.alpha_target = DRAG_ALPHA_TARGET
        self._pins[index] = self.positions[index]
        return True

    def drag_to(self, node_id: str, x: float, y: float) -> bool:
        index = self._index.get(node_id)
        if index is None or index not in self._dragging:
            return False
        self._pins[index] = (x, y)
        return True

    def drag_end(self, node_id: str) -> bool:
        """Release the pin; the node rejoins free simulation."""
        index = self._index.get(node_id)
        if index is None or index not in self._dragging:
            return False
        self._dragging.discard(index)
        self._pins[index] = np.nan
        if not self._dragging:
            self.alpha_target = 0.0
        return True

    def is_pinned(self, node_id: str) -> bool:
        index = self._index.get(node_id)
        return index is not None and not np.isnan(self._pins[index, 0])

    # ============================================================
    # Views
    # ============================================================

    def position_of(self, node_id: str) -> Optional[tuple[float, float]]:
        index = self._index.get(node_id)
        if index is None:
            return None
        x, y = self.positions[index]
        return float(x), float(y)

    def node_positions(self) -> list[dict]:
        return [
            {"id": node_id, "x": float(x), "y": float(y)}
            for node_id, (x, y) in zip(self.node_ids, self.positions)
        ]

    def link_endpoints(self) -> list[Optional[tuple[tuple[float, float], tuple[float, float]]]]:
        """Endpoint coordinates per link, in link order; None for dangling links."""
        ends = []
        for s, t in self._link_ends:
            if s is None or t is None:
                ends.append(None)
                continue
            ends.append((
                (float(self.positions[s, 0]), float(self.positions[s, 1])),
                (float(self.positions[t, 0]), float(self.positions[t, 1])),
            ))
        return ends

    def to_dict(self) -> dict:
        return {
            "alpha": self.alpha,
            "ticks": self.ticks,
            "settled": self.is_settled,
            "nodes": self.node_positions(),
            "links": [
                {"source": list(end[0]), "target": list(end[1])} if end else None
                for end in self.link_endpoints()
            ],
        }

    # ============================================================
    # Forces
    # ============================================================

    def _place_initial(self):
        """Phyllotaxis spiral around the viewport center."""
        index = np.arange(len(self.node_ids), dtype=float)
        radius = INITIAL_RADIUS * np.sqrt(0.5 + index)
        angle = index * INITIAL_ANGLE
        self.positions[:, 0] = self.center[0] + radius * np.cos(angle)
        self.positions[:, 1] = self.center[1] + radius * np.sin(angle)

    def _jiggle(self, shape) -> np.ndarray:
        return (self._rng.random(shape) - 0.5) * 1e-6

    def _apply_links(self):
        if not len(self._sources):
            return
        predicted = self.positions + self.velocities
        delta = predicted[self._targets] - predicted[self._sources]
        zero = (delta == 0)
        delta[zero] = self._jiggle(int(zero.sum()))

        length = np.sqrt((delta ** 2).sum(axis=1))
        scale = (length - self.link_distance) / length * self.alpha * self._link_strength
        delta *= scale[:, None]

        np.add.at(self.velocities, self._targets, -delta * self._link_bias[:, None])
        np.add.at(self.velocities, self._sources, delta * (1 - self._link_bias)[:, None])

    def _apply_charge(self):
        count = len(self.node_ids)
        if count < 2:
            return
        # delta[i, j] points from node i to node j
        delta = self.positions[None, :, :] - self.positions[:, None, :]
        dist2 = (delta ** 2).sum(axis=2)
        off_diagonal = ~np.eye(count, dtype=bool)

        coincident = (dist2 == 0) & off_diagonal
        if coincident.any():
            delta[coincident] = self._jiggle((int(coincident.sum()), 2))
            dist2 = (delta ** 2).sum(axis=2)

        dist2 = np.where(dist2 < DISTANCE_MIN2, np.sqrt(DISTANCE_MIN2 * dist2), dist2)
        weight = np.zeros_like(dist2)
        weight[off_diagonal] = self.charge_strength * self.alpha / dist2[off_diagonal]
        self.velocities += (delta * weight[:, :, None]).sum(axis=1)

    def _apply_center(self):
        shift = self.positions.mean(axis=0) - self.center
        self.positions -= shift

    def _apply_collide(self):
        count = len(self.node_ids)
        if count < 2:
            return
        predicted = self.positions + self.velocities
        first, second = np.triu_indices(count, k=1)
        delta = predicted[first] - predicted[second]
        dist2 = (delta ** 2).sum(axis=1)
        reach = 2 * self.collide_radius
        overlapping = dist2 < reach * reach
        if not overlapping.any():
            return

        first, second, delta = first[overlapping], second[overlapping], delta[overlapping]
        zero = (delta == 0)
        delta[zero] = self._jiggle(int(zero.sum()))
        length = np.sqrt((delta ** 2).sum(axis=1))
        push = delta * ((reach - length) / length)[:, None]

        # Equal radii: each side takes half of the correction
        np.add.at(self.velocities, first, push * 0.5)
        np.add.at(self.velocities, second, -push * 0.5)

    def _integrate(self):
        pinned = ~np.isnan(self._pins[:, 0])
        free = ~pinned
        self.velocities[free] *= (1 - VELOCITY_DECAY)
        self.positions[free] += self.velocities[free]
        self.positions[pinned] = self._pins[pinned]
        self.velocities[pinned] = 0.0
