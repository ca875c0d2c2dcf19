"""
The immutable result of a build: realised beans looked up by key.

A container is never modified once built. Rebuilding produces a new container,
and any container handed out earlier stays valid for whoever still holds it.
"""

from types import MappingProxyType
from typing import Any, Iterator, Mapping

from plinth.bean_builder import BeanBuilder
from plinth.container_manifest import ContainerManifest
from plinth.domain import Key, KeyLike, MaterialisedBean

__all__ = ["Container", "ContainerBuilder"]


class Container(Mapping[Key, Any]):
    """
    A read-only mapping from bean keys to realised values.

    Beans can be looked up by :class:`Key` or by ``"namespace/name"`` text. Besides
    values, the container records where each bean came from and which keys
    preserve the earlier definitions of redefined beans.

    Example:
        >>> container["todo.domain/add-task"]
        >>> container.describe("todo.domain/add-task").plugin_id   # "todo.domain"
        >>> container.originals("todo.persistence/load-fn")
        (Key(namespace='todo.persistence', name='load-fn-ORIG-1'),)
    """

    def __init__(
        self,
        beans: Mapping[Key, MaterialisedBean],
        originals: Mapping[Key, tuple[Key, ...]] = MappingProxyType({}),
    ):
        self._beans = MappingProxyType(dict(beans))
        self._originals = MappingProxyType(dict(originals))

    def __getitem__(self, key: KeyLike) -> Any:
        return self.describe(key).value

    def __iter__(self) -> Iterator[Key]:
        return iter(self._beans)

    def __len__(self) -> int:
        return len(self._beans)

    def __contains__(self, key: object) -> bool:
        try:
            return _as_key(key) in self._beans
        except KeyError:
            return False

    def describe(self, key: KeyLike) -> MaterialisedBean:
        """Return the realised bean, with its provenance, stored under ``key``."""
        return self._beans[_as_key(key)]

    def originals(self, key: KeyLike) -> tuple[Key, ...]:
        """Keys preserving the earlier definitions of ``key``, oldest first."""
        return self._originals.get(_as_key(key), ())

    def __repr__(self) -> str:
        return f"Container({len(self)} beans)"


def _as_key(key: object) -> Key:
    try:
        return Key.parse(key)
    except ValueError:
        raise KeyError(key) from None


class ContainerBuilder:
    """Realise beans from a :class:`ContainerManifest`."""

    def __init__(self, manifest: ContainerManifest, bean_builder: BeanBuilder):
        self._manifest = manifest
        self._bean_builder = bean_builder

    def build(self) -> Container:
        """Realise every bean of the manifest, in build order.

        Returns:
            A :class:`Container` holding every bean except hoisted inner beans.

        Raises:
            BeanCreationError: If a factory or mutator fails; nothing is published.
        """
        built: dict[Key, MaterialisedBean] = {}

        for key in self._manifest.build_order:
            looked_up_values = {
                dependency: built[dependency].value
                for dependency in self._manifest.dependencies[key]
            }
            built[key] = self._bean_builder.build(
                self._manifest.definitions[key], looked_up_values
            )

        published = {
            key: built[key]
            for key in self._manifest.definitions
            if key not in self._manifest.hidden
        }
        return Container(published, self._manifest.originals)
