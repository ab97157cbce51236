"""Workflow graph document: nodes, typed links, and the engine wire codec."""

import logging
from typing import Any, Dict, List, Optional, Set, Tuple
from pydantic import BaseModel, Field, ValidationError
from services.workflow.catalog import NodeSchema, get_node_schema
from shared.constants import (
    DEFAULT_NODE_SIZE,
    WORKFLOW_GRAPH_REVISION,
    WORKFLOW_GRAPH_VERSION,
)
from shared.exceptions import LinkTypeMismatchError, WorkflowValidationError
from shared.utils import generate_graph_id

WireGraph = Dict[str, Dict[str, Any]]


class Node(BaseModel):
    id: int = Field(gt=0)
    type: str
    pos: List[float] = Field(default_factory=lambda: [0.0, 0.0])
    size: List[float] = Field(default_factory=lambda: list(DEFAULT_NODE_SIZE))
    widgets_values: List[Any] = Field(default_factory=list)

    @property
    def node_schema(self) -> NodeSchema:
        return get_node_schema(self.type)


class Link(BaseModel):
    id: int = Field(gt=0)
    source_id: int
    source_slot: int = Field(ge=0)
    target_id: int
    target_slot: int = Field(ge=0)
    data_type: str

    def to_list(self) -> List[Any]:
        return [self.id, self.source_id, self.source_slot, self.target_id, self.target_slot, self.data_type]

    @classmethod
    def from_list(cls, raw: List[Any]) -> "Link":
        if not isinstance(raw, (list, tuple)) or len(raw) != 6:
            raise WorkflowValidationError(f"Link must be a 6-element list, got {raw!r}")
        link_id, source_id, source_slot, target_id, target_slot, data_type = raw
        try:
            return cls(
                id=link_id,
                source_id=source_id,
                source_slot=source_slot,
                target_id=target_id,
                target_slot=target_slot,
                data_type=data_type,
            )
        except ValidationError as e:
            raise WorkflowValidationError(f"Invalid link {raw!r}: {e}")

    @property
    def endpoints(self) -> Tuple[int, int, int, int, str]:
        return (self.source_id, self.source_slot, self.target_id, self.target_slot, self.data_type)


class WorkflowGraph(BaseModel):
    """Append-only node/link graph validated against the node catalog"""
    id: str = Field(default_factory=generate_graph_id)
    revision: int = WORKFLOW_GRAPH_REVISION
    version: float = WORKFLOW_GRAPH_VERSION
    nodes: List[Node] = Field(default_factory=list)
    links: List[Link] = Field(default_factory=list)
    extra: Dict[str, Any] = Field(default_factory=dict)

    @property
    def last_node_id(self) -> int:
        return max((node.id for node in self.nodes), default=0)

    @property
    def last_link_id(self) -> int:
        return max((link.id for link in self.links), default=0)

    def get_node(self, node_id: int) -> Node:
        for node in self.nodes:
            if node.id == node_id:
                return node
        raise WorkflowValidationError(f"Node {node_id} not found in graph {self.id}", node_id=node_id)

    def has_node(self, node_id: int) -> bool:
        return any(node.id == node_id for node in self.nodes)

    def find_nodes(self, node_type: str) -> List[Node]:
        return [node for node in self.nodes if node.type == node_type]

    def add_node(
        self,
        node_type: str,
        x: float = 0.0,
        y: float = 0.0,
        node_id: Optional[int] = None,
        widgets_values: Optional[List[Any]] = None,
    ) -> Node:
        """Appends a node; returns the mutable node so callers can set widgets_values"""
        get_node_schema(node_type)

        if node_id is None:
            node_id = self.last_node_id + 1
        elif not isinstance(node_id, int) or node_id <= 0:
            raise WorkflowValidationError(f"Node ID must be a positive integer, got {node_id!r}", node_id=node_id)
        elif self.has_node(node_id):
            raise WorkflowValidationError(f"Duplicate node ID: {node_id}", node_id=node_id)

        node = Node(id=node_id, type=node_type, pos=[x, y], widgets_values=list(widgets_values or []))
        self.nodes.append(node)
        return node

    def add_link(
        self,
        source_id: int,
        source_slot: int,
        target_id: int,
        target_slot: int,
        data_type: str,
    ) -> Link:
        """Appends a link after checking both endpoints declare data_type"""
        source = self.get_node(source_id)
        target = self.get_node(target_id)
        source_schema = source.node_schema
        target_schema = target.node_schema

        if not 0 <= source_slot < len(source_schema.outputs):
            raise WorkflowValidationError(
                f"{source.type} (node {source_id}) has no output slot {source_slot}",
                node_id=source_id,
            )
        if not 0 <= target_slot < len(target_schema.inputs):
            raise WorkflowValidationError(
                f"{target.type} (node {target_id}) has no input slot {target_slot}",
                node_id=target_id,
            )

        output_spec = source_schema.outputs[source_slot]
        input_spec = target_schema.inputs[target_slot]
        if output_spec.type != data_type or input_spec.type != data_type:
            raise LinkTypeMismatchError(
                f"Link {source.type}[{source_slot}] {output_spec.type} -> "
                f"{target.type}.{input_spec.name} {input_spec.type} declared as {data_type}",
                source_id=source_id,
                target_id=target_id,
            )

        if self._incoming_link(target_id, target_slot) is not None:
            raise WorkflowValidationError(
                f"Input {input_spec.name} of node {target_id} is already linked",
                node_id=target_id,
            )

        link = Link(
            id=self.last_link_id + 1,
            source_id=source_id,
            source_slot=source_slot,
            target_id=target_id,
            target_slot=target_slot,
            data_type=data_type,
        )
        self.links.append(link)
        return link

    def _incoming_link(self, target_id: int, target_slot: int) -> Optional[Link]:
        for link in self.links:
            if link.target_id == target_id and link.target_slot == target_slot:
                return link
        return None

    def validate_graph(self) -> None:
        """Checks widget arity and that every required input is linked"""
        for node in self.nodes:
            schema = node.node_schema
            if len(node.widgets_values) != len(schema.widgets):
                raise WorkflowValidationError(
                    f"{node.type} (node {node.id}) expects {len(schema.widgets)} widget values "
                    f"{schema.widgets}, got {len(node.widgets_values)}",
                    node_id=node.id,
                )
            for slot in schema.required_inputs:
                if self._incoming_link(node.id, slot) is None:
                    raise WorkflowValidationError(
                        f"Required input {schema.inputs[slot].name} of {node.type} (node {node.id}) is not linked",
                        node_id=node.id,
                    )

    def to_wire(self) -> WireGraph:
        """Converts to the engine's node-map prompt format"""
        self.validate_graph()
        wire: WireGraph = {}
        for node in self.nodes:
            schema = node.node_schema
            inputs: Dict[str, Any] = {}
            for slot, spec in enumerate(schema.inputs):
                link = self._incoming_link(node.id, slot)
                if link is not None:
                    inputs[spec.name] = [str(link.source_id), link.source_slot]
            for name, value in zip(schema.widgets, node.widgets_values):
                inputs[name] = value
            wire[str(node.id)] = {"class_type": node.type, "inputs": inputs}
        return wire

    @classmethod
    def from_wire(cls, wire: WireGraph, graph_id: Optional[str] = None) -> "WorkflowGraph":
        """Rebuilds a graph from the node-map prompt format"""
        graph = cls(id=graph_id) if graph_id else cls()
        pending_links: List[Tuple[int, int, int, int]] = []

        for key, entry in wire.items():
            try:
                node_id = int(key)
            except (TypeError, ValueError):
                raise WorkflowValidationError(f"Wire node id must be an integer string, got {key!r}")
            if not isinstance(entry, dict) or "class_type" not in entry:
                raise WorkflowValidationError(f"Wire node {key} has no class_type", node_id=node_id)

            schema = get_node_schema(entry["class_type"])
            inputs = entry.get("inputs", {}) or {}

            missing = [name for name in schema.widgets if name not in inputs]
            if missing:
                raise WorkflowValidationError(
                    f"Wire node {key} ({schema.node_type}) is missing widget inputs {missing}",
                    node_id=node_id,
                )

            graph.add_node(
                schema.node_type,
                node_id=node_id,
                widgets_values=[inputs[name] for name in schema.widgets],
            )

            for target_slot, spec in enumerate(schema.inputs):
                value = inputs.get(spec.name)
                if value is None:
                    continue
                if not isinstance(value, (list, tuple)) or len(value) != 2:
                    raise WorkflowValidationError(
                        f"Wire node {key} input {spec.name} must reference [node_id, slot]",
                        node_id=node_id,
                    )
                try:
                    source_id, source_slot = int(value[0]), int(value[1])
                except (TypeError, ValueError):
                    raise WorkflowValidationError(
                        f"Wire node {key} input {spec.name} has a non-numeric reference {value!r}",
                        node_id=node_id,
                    )
                pending_links.append((source_id, source_slot, node_id, target_slot))

        # Links are added once every node exists so forward references resolve
        for source_id, source_slot, target_id, target_slot in pending_links:
            source_schema = graph.get_node(source_id).node_schema
            if not 0 <= source_slot < len(source_schema.outputs):
                raise WorkflowValidationError(
                    f"Node {source_id} has no output slot {source_slot}", node_id=source_id
                )
            graph.add_link(
                source_id,
                source_slot,
                target_id,
                target_slot,
                source_schema.outputs[source_slot].type,
            )

        return graph

    def to_document(self) -> Dict[str, Any]:
        """Converts to the engine's editor workflow document"""
        outgoing: Dict[Tuple[int, int], List[int]] = {}
        for link in self.links:
            outgoing.setdefault((link.source_id, link.source_slot), []).append(link.id)

        nodes = []
        for order, node in enumerate(self.nodes):
            schema = node.node_schema
            inputs = []
            for slot, spec in enumerate(schema.inputs):
                link = self._incoming_link(node.id, slot)
                inputs.append({"name": spec.name, "type": spec.type, "link": link.id if link else None})
            outputs = [
                {"name": spec.name, "type": spec.type, "links": outgoing.get((node.id, slot), [])}
                for slot, spec in enumerate(schema.outputs)
            ]
            nodes.append({
                "id": node.id,
                "type": node.type,
                "pos": list(node.pos),
                "size": list(node.size),
                "flags": {},
                "order": order,
                "mode": 0,
                "inputs": inputs,
                "outputs": outputs,
                "properties": {"Node name for S&R": node.type},
                "widgets_values": list(node.widgets_values),
            })

        return {
            "id": self.id,
            "revision": self.revision,
            "last_node_id": self.last_node_id,
            "last_link_id": self.last_link_id,
            "nodes": nodes,
            "links": [link.to_list() for link in self.links],
            "groups": [],
            "config": {},
            "extra": dict(self.extra),
            "version": self.version,
        }

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "WorkflowGraph":
        """Rebuilds a graph from an editor workflow document"""
        graph = cls(
            id=document.get("id") or generate_graph_id(),
            revision=document.get("revision", WORKFLOW_GRAPH_REVISION),
            version=document.get("version", WORKFLOW_GRAPH_VERSION),
            extra=document.get("extra") or {},
        )
        for raw_node in document.get("nodes", []):
            node = graph.add_node(
                raw_node["type"],
                node_id=raw_node["id"],
                widgets_values=raw_node.get("widgets_values") or [],
            )
            if raw_node.get("pos"):
                node.pos = list(raw_node["pos"])
            if raw_node.get("size"):
                node.size = list(raw_node["size"])

        seen_link_ids: Set[int] = set()
        for raw_link in document.get("links", []):
            link = Link.from_list(raw_link)
            if link.id in seen_link_ids:
                raise WorkflowValidationError(f"Duplicate link ID: {link.id}")
            seen_link_ids.add(link.id)
            added = graph.add_link(link.source_id, link.source_slot, link.target_id, link.target_slot, link.data_type)
            added.id = link.id

        logging.debug(
            "Loaded workflow document",
            extra={"graph_id": graph.id, "nodes": len(graph.nodes), "links": len(graph.links)}
        )
        return graph

    def is_equivalent(self, other: "WorkflowGraph") -> bool:
        """Same ordered nodes (id, type, widgets) and same set of link endpoints"""
        mine = [(n.id, n.type, list(n.widgets_values)) for n in self.nodes]
        theirs = [(n.id, n.type, list(n.widgets_values)) for n in other.nodes]
        return mine == theirs and self._link_set() == other._link_set()

    def _link_set(self) -> Set[Tuple[int, int, int, int, str]]:
        return {link.endpoints for link in self.links}
