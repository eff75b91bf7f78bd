from typing import Dict, Iterable, Optional, Union

from tree_sitter import Node

from trackscope.services.primitives import FRAMEWORK_SOURCE
from trackscope.services.syntax import node_text


def _module_specifier(import_node: Node) -> Optional[str]:
    source = import_node.child_by_field_name("source")
    if source is None:
        return None
    return node_text(source).strip("'\"`")


class ImportAliasTable:
    """
    Maps framework primitive names to the local names this file imports them
    under, e.g. `import { createSignal as signal } from "solid-js"`.

    Only named imports count. Default and namespace imports are not primitives.
    """

    def __init__(self, source_pattern=FRAMEWORK_SOURCE):
        self.source_pattern = source_pattern
        self._local_by_canonical: Dict[str, str] = {}

    def record(self, import_node: Node) -> None:
        specifier = _module_specifier(import_node)
        if specifier is None or not self.source_pattern.match(specifier):
            return
        clause = next((c for c in import_node.children if c.type == "import_clause"), None)
        if clause is None:
            return
        for named in clause.named_children:
            if named.type != "named_imports":
                continue
            for spec in named.named_children:
                if spec.type != "import_specifier":
                    continue
                imported = spec.child_by_field_name("name")
                local = spec.child_by_field_name("alias") or imported
                if imported is None or local is None:
                    continue
                self._local_by_canonical[node_text(imported)] = node_text(local)

    def match(self, canonical: Union[str, Iterable[str]], local: str) -> Optional[str]:
        """Return the canonical name among `canonical` that `local` was imported as."""
        names = [canonical] if isinstance(canonical, str) else canonical
        for name in names:
            if self._local_by_canonical.get(name) == local:
                return name
        return None

    def lookup(self) -> Dict[str, str]:
        """local name -> canonical primitive name."""
        return {local: canonical for canonical, local in self._local_by_canonical.items()}
