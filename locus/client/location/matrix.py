"""Location matrix: logical location ids to concrete URLs.

The matrix abstracts the locations of a network of interrelated sites and API
stacks across environments, data residency zones and data centers.

Architecture:
    - Descriptor graph: each LocationDescriptor carries a URI fragment and an
      optional parent id; full URIs are assembled by walking parents
    - Keyed index: every descriptor is saved under up to four keys of
      decreasing specificity so lookups degrade to the most generic match
    - Ambient context: one mutable LocationContext per matrix selects the
      environment, residency and bound location used by default
    - Lookup cache: results of ambient-context lookups are memoized per id

Index Keys (most to least specific):
    {id}-{environment}-{residency}-{location}
    {id}-{environment}-{residency}
    {id}-{environment}-*
    {id}-*-*

Lookup Flow:
    1. Exact key with the bound location
    2. Each accessible location other than the bound one
    3. Environment and residency
    4. Environment with wildcard residency
    5. Full wildcard

See Also:
    - LocationType: well-known logical ids
    - DEFAULT_LOCATIONS: descriptor table loaded by LocationMatrix.with_defaults()
    - APIClient: resolves service stacks through the matrix
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from ..core.config import ClientSettings
from ..core.enums import LocationType, location_key
from ..core.exceptions import LocationResolutionError

logger = logging.getLogger(__name__)


@dataclass
class LocationDescriptor:
    """A node of the location graph."""

    loc_type_id: str
    uri: str | None = None
    environment: str | None = None
    residency: str | None = None
    location_id: str | None = None
    parent_id: str | None = None
    product_type: str | None = None
    aspect: str | None = None
    ui_caption: str | None = None
    ui_entry_point: Any = None
    data: Any = None
    _full_uri: str | None = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.loc_type_id = location_key(self.loc_type_id)
        if self.parent_id is not None:
            self.parent_id = location_key(self.parent_id)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> LocationDescriptor:
        return cls(**raw)


@dataclass
class LocationContext:
    """Selection criteria for location lookups."""

    environment: str | None = None
    residency: str | None = None
    location: str | None = None
    accessible: list[str] | None = None


class LocationMatrix:
    """In-memory index of location descriptors with contextual resolution."""

    def __init__(
        self,
        nodes: Iterable[LocationDescriptor] | None = None,
        acting_uri: str | bool | None = None,
        context: LocationContext | None = None,
    ) -> None:
        # Lookup cache: logical id -> descriptor, ambient context only
        self._nodes: dict[str, LocationDescriptor] = {}
        self._node_map: dict[str, LocationDescriptor] = {}
        self._environment = "production"
        self._residency = "US"
        self._location: str | None = None
        self._accessible: list[str] | None = None
        self._actor: LocationDescriptor | None = None

        self.update(nodes, acting_uri)
        self.set_context(context)

    @classmethod
    def with_defaults(
        cls,
        acting_uri: str | bool | None = None,
        context: LocationContext | None = None,
    ) -> LocationMatrix:
        """Matrix preloaded with the standard API stacks and console UIs."""
        from .defaults import default_locations

        return cls(default_locations(), acting_uri=acting_uri, context=context)

    @staticmethod
    def ui_locations(
        loc_type_id: str | LocationType, app_code: str, dev_port: int
    ) -> list[LocationDescriptor]:
        """Standard production/integration/development descriptors for a console UI."""
        return [
            LocationDescriptor(
                loc_type_id=loc_type_id,
                environment="production",
                residency="US",
                uri=f"https://console.{app_code}.alertlogic.com",
            ),
            LocationDescriptor(
                loc_type_id=loc_type_id,
                environment="production",
                residency="EMEA",
                uri=f"https://console.{app_code}.alertlogic.co.uk",
            ),
            LocationDescriptor(
                loc_type_id=loc_type_id,
                environment="integration",
                uri=f"https://console.{app_code}.product.dev.alertlogic.com",
            ),
            LocationDescriptor(
                loc_type_id=loc_type_id,
                environment="development",
                uri=f"http://localhost:{dev_port}",
            ),
        ]

    # --- Graph mutation ----------------------------------------------------

    def update(
        self,
        nodes: Iterable[LocationDescriptor] | None,
        acting_uri: str | bool | None = None,
    ) -> None:
        """Add descriptors and optionally deduce the acting node from a URI."""
        if nodes:
            for node in nodes:
                self.save_node(node)
        if acting_uri:
            self.set_acting_location(acting_uri)

    def save_node(self, node: LocationDescriptor) -> None:
        """Index a descriptor under every key it qualifies for."""
        if node.environment and node.residency:
            if node.location_id:
                self._node_map[
                    f"{node.loc_type_id}-{node.environment}-{node.residency}-{node.location_id}"
                ] = node
            self._node_map[f"{node.loc_type_id}-{node.environment}-{node.residency}"] = node
        if node.environment:
            self._node_map[f"{node.loc_type_id}-{node.environment}-*"] = node
        self._node_map[f"{node.loc_type_id}-*-*"] = node
        self._invalidate()

    def remove(self, loc_type_id: str | LocationType) -> None:
        """Drop every descriptor indexed under a logical id."""
        prefix = f"{location_key(loc_type_id)}-"
        for key in [k for k, node in self._node_map.items() if k.startswith(prefix)]:
            if self._node_map[key].loc_type_id == location_key(loc_type_id):
                del self._node_map[key]
        self._invalidate()

    def reset(self) -> None:
        """Forget every descriptor and return to the production/US context."""
        self._node_map.clear()
        self._nodes.clear()
        self._environment = "production"
        self._residency = "US"
        self._location = None
        self._accessible = None
        self._actor = None

    def _invalidate(self) -> None:
        self._nodes.clear()
        for node in self._node_map.values():
            node._full_uri = None

    # --- Context -------------------------------------------------------------

    def set_context(self, context: LocationContext | None = None) -> None:
        """Set the ambient environment, residency and location attributes.

        Unset fields keep their current values. Binding a location adopts that
        location's residency when a descriptor for it declares one.
        """
        self._nodes.clear()
        if context is not None and context.location:
            self._location = context.location
        if context is not None and context.accessible:
            self._accessible = list(context.accessible)
        if self._location:
            location_node = self.find_one(lambda n: n.location_id == self._location)
            if location_node is not None and location_node.residency:
                self._residency = location_node.residency
        if context is not None and context.environment:
            self._environment = context.environment
        if context is not None and context.residency:
            self._residency = context.residency

    def get_context(self) -> LocationContext:
        return LocationContext(
            environment=self._environment,
            residency=self._residency,
            location=self._location,
            accessible=list(self._accessible) if self._accessible else None,
        )

    @property
    def current_environment(self) -> str:
        return self._environment

    @property
    def current_residency(self) -> str:
        return self._residency

    # --- Lookup ----------------------------------------------------------------

    def search(self, predicate: Callable[[LocationDescriptor], bool]) -> list[LocationDescriptor]:
        """All indexed entries matching a predicate (a node may appear once per key)."""
        return [node for node in self._node_map.values() if predicate(node)]

    def find_one(
        self, predicate: Callable[[LocationDescriptor], bool]
    ) -> LocationDescriptor | None:
        for node in self._node_map.values():
            if predicate(node):
                return node
        return None

    def resolve(
        self,
        loc_type_id: str | LocationType,
        context: LocationContext | None = None,
    ) -> LocationDescriptor | None:
        """Select the most specific descriptor for a logical id.

        Args:
            loc_type_id: Logical id to resolve
            context: Optional override; unset fields fall back to the ambient
                context. Results are only memoized when no override is given.

        Returns:
            The matching descriptor, or None when nothing matches
        """
        loc_type_id = location_key(loc_type_id)
        if context is None and loc_type_id in self._nodes:
            return self._nodes[loc_type_id]

        environment = (context.environment if context else None) or self._environment
        residency = (context.residency if context else None) or self._residency
        location = (context.location if context else None) or self._location
        accessible = (context.accessible if context else None) or self._accessible
        node: LocationDescriptor | None = None

        if location:
            node = self._node_map.get(f"{loc_type_id}-{environment}-{residency}-{location}")
        if node is None and accessible:
            for location_id in accessible:
                if location_id == location:
                    continue
                node = self._node_map.get(f"{loc_type_id}-{environment}-{residency}-{location_id}")
                if node is not None:
                    break
        if node is None and environment and residency:
            node = self._node_map.get(f"{loc_type_id}-{environment}-{residency}")
        if node is None and environment:
            node = self._node_map.get(f"{loc_type_id}-{environment}-*")
        if node is None:
            node = self._node_map.get(f"{loc_type_id}-*-*")

        if node is not None and context is None:
            self._nodes[loc_type_id] = node
        return node

    get_node = resolve

    def resolve_node_uri(
        self, node: LocationDescriptor, context: LocationContext | None = None
    ) -> str:
        """Full URI of a descriptor, assembled root-to-leaf through its parents."""
        if node._full_uri and context is None:
            return node._full_uri
        uri = ""
        parent = self.resolve(node.parent_id, context) if node.parent_id else None
        if parent is not None and parent is not node:
            uri += self.resolve_node_uri(parent, context)
        if node.uri:
            uri += node.uri
            # Protocol-less roots (e.g. "tenant.auth0.com") default to https
            if parent is None and not uri.startswith("http"):
                uri = f"https://{uri}"
        if context is None:
            node._full_uri = uri
        return uri

    def resolve_url(
        self,
        loc_type_id: str | LocationType,
        path: str | None = None,
        context: LocationContext | None = None,
    ) -> str:
        """URL of a logical id, optionally with a path appended.

        Raises:
            LocationResolutionError: If no descriptor matches
        """
        node = self.resolve(loc_type_id, context)
        if node is None:
            env = (context.environment if context else None) or self._environment
            res = (context.residency if context else None) or self._residency
            raise LocationResolutionError(
                f"No location information available for '{location_key(loc_type_id)}' "
                f"in environment '{env}', residency '{res}'",
                loc_type_id=location_key(loc_type_id),
                environment=env,
                residency=res,
            )
        url = self.resolve_node_uri(node, context)
        if path:
            url += path
        return url

    # --- Acting location -------------------------------------------------------

    def get_node_by_uri(self, target_uri: str) -> LocationDescriptor | None:
        """Descriptor whose full URI is the longest prefix match for a URI."""
        matching: LocationDescriptor | None = None
        matching_uri = ""
        for candidate in self._node_map.values():
            candidate._full_uri = None
            uri = self.resolve_node_uri(candidate)
            if uri and (uri.startswith(target_uri) or target_uri.startswith(uri)):
                if matching is None or len(matching_uri) < len(uri):
                    matching = candidate
                    matching_uri = uri
        return matching

    def set_acting_location(self, acting_uri: str | bool) -> LocationDescriptor | None:
        """Deduce the acting node from a URI and adopt its environment and residency.

        Args:
            acting_uri: A literal URI, or True to read ``ClientSettings.acting_uri``
                (``LOCUS_ACTING_URI``)

        Returns:
            The acting descriptor, or None if no descriptor matches
        """
        if acting_uri is True:
            acting_uri = ClientSettings().acting_uri or ""
        if not acting_uri:
            logger.warning("No acting URI available; keeping the current location context")
            return None
        self._actor = self.get_node_by_uri(str(acting_uri))
        if self._actor is None:
            logger.warning(
                "Could not deduce the acting location from %s; falling back to %s/%s",
                acting_uri,
                self._environment,
                self._residency,
            )
            return None
        self.set_context(
            LocationContext(
                environment=self._actor.environment or self._environment,
                residency=self._actor.residency or self._residency,
            )
        )
        return self._actor

    def get_acting_node(self) -> LocationDescriptor | None:
        return self._actor
