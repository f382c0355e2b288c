"""Link registry: the parent's ``.gitmodules`` parsed into LinkedRepository entries."""

from __future__ import annotations

import logging
from pathlib import Path

from linkctl.errors import FatalError, GitCommandError, NotAParentRepositoryError, NotFoundError
from linkctl.git import config_list, get_repo_root
from linkctl.model import LinkedRepository

log = logging.getLogger(__name__)

GITMODULES = ".gitmodules"


def find_parent_root(cwd: str) -> str:
    """Return the parent repository root, which must carry a ``.gitmodules``."""
    root = get_repo_root(cwd)
    if not (Path(root) / GITMODULES).is_file():
        raise NotAParentRepositoryError(
            f"{GITMODULES} not found. Run from inside the parent repository.",
            path=root,
        )
    return root


def load_links(parent_root: str) -> list[LinkedRepository]:
    """Read every ``submodule.<name>.{path,url}`` entry, in file order."""
    if not (Path(parent_root) / GITMODULES).is_file():
        return []
    try:
        pairs = config_list(GITMODULES, cwd=parent_root)
    except GitCommandError as e:
        raise FatalError(f"cannot parse {GITMODULES}: {e.message}", path=parent_root) from e

    entries: dict[str, dict[str, str]] = {}
    for key, value in pairs:
        section, _, rest = key.partition(".")
        if section != "submodule":
            continue
        # submodule names may themselves contain dots
        name, _, var = rest.rpartition(".")
        if name:
            entries.setdefault(name, {})[var] = value

    links = []
    for name, fields in entries.items():
        path = fields.get("path")
        if not path:
            raise FatalError(
                f"submodule '{name}' in {GITMODULES} has no path.", path=parent_root,
            )
        links.append(LinkedRepository(name=name, path=path, url=fields.get("url")))
    log.debug("registry: %d link(s) in %s", len(links), parent_root)
    return links


def known_names(links: list[LinkedRepository]) -> list[str]:
    return [Path(link.path).name for link in links]


def find_link(links: list[LinkedRepository], name: str) -> LinkedRepository:
    """Look a link up by registry name, path, or the path's final component."""
    for link in links:
        if name in (link.name, link.path, Path(link.path).name):
            return link
    raise NotFoundError(
        f"linked repository '{name}' not found.",
        known=known_names(links),
        repository=name,
    )
