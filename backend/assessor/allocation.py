"""Split a combined deck across sources and draw each share without replacement."""
from __future__ import annotations

import random
from typing import Dict, List, Mapping, Sequence

from .errors import GenerationInsufficient
from .models import QuestionRecord


def allocate_counts(total: int, keys: Sequence[str]) -> Dict[str, int]:
	"""Per-source question counts summing exactly to ``total``.

	Every source gets ``total // len(keys)``; the remainder is handed out one
	question at a time following the order of ``keys``.
	"""
	if total < 0:
		raise ValueError("total must be >= 0")
	if not keys:
		return {}
	base, remainder = divmod(total, len(keys))
	counts = {key: base for key in keys}
	for key in keys[:remainder]:
		counts[key] += 1
	return counts


def select_from_bank(bank: Sequence[QuestionRecord], count: int, rng: random.Random) -> List[QuestionRecord]:
	if count > len(bank):
		raise GenerationInsufficient(f"Bank has {len(bank)} questions, {count} requested")
	shuffled = list(bank)
	rng.shuffle(shuffled)
	return shuffled[:count]


def build_combined_deck(
	banks: Mapping[str, Sequence[QuestionRecord]],
	counts: Mapping[str, int],
	rng: random.Random,
) -> List[QuestionRecord]:
	deck: List[QuestionRecord] = []
	for key, count in counts.items():
		if count == 0:
			continue
		for q in select_from_bank(banks.get(key, ()), count, rng):
			deck.append(q.model_copy(update={"id": f"{key}-{q.id}", "source": key}))
	# source order must not be visible from deck position
	rng.shuffle(deck)
	return deck


__all__ = ["allocate_counts", "build_combined_deck", "select_from_bank"]
