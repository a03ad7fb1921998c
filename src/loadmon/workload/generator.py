from __future__ import annotations

from dataclasses import dataclass
from random import Random

from loadmon.config import TargetConfig


@dataclass(frozen=True, slots=True)
class WorkloadGenerator:
    target: TargetConfig
    rng: Random

    def random_id(self) -> int:
        return self.rng.randint(1, self.target.max_id)

    def generate(self, count: int) -> list[str]:
        return [self.target.url_for(self.random_id()) for _ in range(count)]


def unique_ids(count: int, max_id: int, rng: Random) -> list[int]:
    if count > max_id:
        msg = f"Cannot draw {count} unique ids from 1..{max_id}"
        raise ValueError(msg)
    return rng.sample(range(1, max_id + 1), count)
