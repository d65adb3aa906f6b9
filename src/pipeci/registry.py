# registry.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

from .errors import UnknownJobError, ValidationError
from .model import JobSpec


@dataclass(frozen=True)
class JobEntry:
    """A job spec together with its human-readable description."""
    spec: JobSpec
    description: str

    @property
    def name(self) -> str:
        return self.spec.name


class JobRegistry:
    """
    Read-only, ordered mapping from job name to JobEntry.

    Built once and passed explicitly to the runner, the emitter and the CLI.
    """

    def __init__(self, entries: Iterable[JobEntry]):
        by_name: Dict[str, JobEntry] = {}
        for entry in entries:
            if entry.name in by_name:
                raise ValidationError(
                    f"Duplicate job name: {entry.name}",
                    job=entry.name,
                )
            by_name[entry.name] = entry
        self._entries = by_name

    @classmethod
    def of(cls, *entries: JobEntry) -> "JobRegistry":
        return cls(entries)

    # ---- lookup ----

    def get(self, name: str) -> JobEntry:
        try:
            return self._entries[name]
        except KeyError:
            raise UnknownJobError([name], self.names()) from None

    def spec(self, name: str) -> JobSpec:
        return self.get(name).spec

    def description(self, name: str) -> str:
        return self.get(name).description

    def resolve(self, names: Iterable[str]) -> List[JobSpec]:
        """
        Map job names to specs, in order.

        All names are checked before anything is returned, so a single
        UnknownJobError lists every unknown name.
        """
        names = list(names)
        unknown = [n for n in names if n not in self._entries]
        if unknown:
            raise UnknownJobError(unknown, self.names())
        return [self._entries[n].spec for n in names]

    # ---- enumeration ----

    def names(self) -> List[str]:
        return list(self._entries)

    def entries(self) -> List[JobEntry]:
        return list(self._entries.values())

    def descriptions(self) -> Mapping[str, str]:
        return {n: e.description for n, e in self._entries.items()}

    def __iter__(self) -> Iterator[JobEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __repr__(self) -> str:
        return f"JobRegistry({self.names()!r})"


def coerce_registry(value: object) -> Optional[JobRegistry]:
    """Accept a JobRegistry or a list of JobEntry (what workflow files return)."""
    if isinstance(value, JobRegistry):
        return value
    if isinstance(value, (list, tuple)) and all(isinstance(e, JobEntry) for e in value):
        return JobRegistry(value)
    return None
