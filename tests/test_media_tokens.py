"""Tests for the media token registry and order sequence."""

import random

import pytest

from app.core.media_tokens import (
    LocalToken,
    MediaTokenRegistry,
    OrderSequence,
    RemoteMedia,
    RemoteToken,
)
from app.schemas.post_schema import LocalOrderRef, RemoteOrderRef

from conftest import make_file


def seeded_registry(*remote_ids, previews=None):
    registry = MediaTokenRegistry(previews=previews)
    registry.seed_remote(
        RemoteMedia(token=RemoteToken(i), remote_id=i, mime_class="image")
        for i in remote_ids
    )
    return registry


def encoding(registry):
    return [r.model_dump() for r in registry.order.to_canonical_encoding(registry)]


# ── Tokens ───────────────────────────────────────────────────────


class TestTokens:
    def test_remote_token_is_derived_from_id(self):
        assert RemoteToken(7) == RemoteToken(7)
        assert str(RemoteToken(7)) == "e:7"

    def test_local_tokens_are_unique_and_never_reused(self):
        registry = MediaTokenRegistry()
        seen = set()
        for _ in range(20):
            tokens = registry.add_local([make_file("a.png"), make_file("b.png")])
            for t in tokens:
                registry.remove_local(t)
            seen.update(tokens)
        assert len(seen) == 40
        assert all(str(t).startswith("n:") for t in seen)


# ── Registry ─────────────────────────────────────────────────────


class TestRegistry:
    def test_add_local_filters_non_media_and_keeps_input_order(self):
        registry = MediaTokenRegistry()
        tokens = registry.add_local([
            make_file("one.png"),
            make_file("notes.txt", "text/plain"),
            make_file("clip.mp4", "video/mp4"),
            make_file("doc.pdf", "application/pdf"),
        ])

        assert len(tokens) == 2
        assert registry.order.tokens == tokens
        assert registry.get(tokens[0]).file.filename == "one.png"
        assert registry.get(tokens[1]).mime_class == "video"

    def test_add_local_uses_extension_when_content_type_missing(self):
        registry = MediaTokenRegistry()
        tokens = registry.add_local([make_file("photo.JPG", None), make_file("x.bin", None)])
        assert len(tokens) == 1

    def test_add_local_appends_after_existing(self):
        registry = seeded_registry(1, 2)
        tokens = registry.add_local([make_file("f1.png")])
        assert registry.order.tokens == [RemoteToken(1), RemoteToken(2), tokens[0]]

    def test_mark_remote_removed_records_id_and_drops_token(self):
        registry = seeded_registry(1, 2)
        registry.mark_remote_removed(RemoteToken(1))

        assert registry.removed_remote_ids == [1]
        assert not registry.is_live(RemoteToken(1))
        assert RemoteToken(1) not in registry.order

    def test_remove_local_keeps_no_record(self):
        registry = seeded_registry(1)
        (token,) = registry.add_local([make_file("f.png")])
        registry.remove_local(token)

        assert registry.removed_remote_ids == []
        assert token not in registry.order
        assert len(registry) == 1

    def test_unknown_tokens_are_noops(self):
        registry = seeded_registry(1)
        registry.mark_remote_removed(RemoteToken(99))
        registry.remove_local(LocalToken("stale"))
        registry.remove(RemoteToken(99))

        assert registry.removed_remote_ids == []
        assert registry.order.tokens == [RemoteToken(1)]

    def test_repeated_removal_is_idempotent(self):
        registry = seeded_registry(1, 2)
        registry.remove(RemoteToken(1))
        registry.remove(RemoteToken(1))
        assert registry.removed_remote_ids == [1]

    def test_wrong_kind_removal_is_noop(self):
        registry = seeded_registry(1)
        registry.remove_local(RemoteToken(1))
        assert registry.is_live(RemoteToken(1))

    def test_previews_released_exactly_once(self, previews):
        registry = MediaTokenRegistry(previews=previews)
        a, b, c = registry.add_local([make_file("a.png"), make_file("b.png"), make_file("c.png")])

        registry.remove_local(a)
        registry.remove_local(a)
        registry.reset()
        registry.reset()

        assert sorted(previews.released) == sorted(previews.acquired)
        assert len(previews.released) == 3
        assert registry.preview(b) is None

    def test_failed_preview_leaves_registry_and_order_in_step(self):
        class FailingPreviews:
            def __init__(self):
                self.calls = 0

            def acquire(self, file):
                self.calls += 1
                if self.calls == 2:
                    raise RuntimeError("preview unavailable")
                return file.filename

            def release(self, handle):
                pass

        registry = MediaTokenRegistry(previews=FailingPreviews())
        with pytest.raises(RuntimeError):
            registry.add_local([make_file("a.png"), make_file("b.png"), make_file("c.png")])

        assert len(registry) == len(registry.order) == 1
        assert all(registry.is_live(t) for t in registry.order)
        assert registry.local_added_count == 1

    def test_reset_empties_registry_and_order(self):
        registry = seeded_registry(1, 2)
        registry.add_local([make_file("a.png")])
        registry.remove(RemoteToken(2))
        registry.reset()

        assert len(registry) == 0
        assert len(registry.order) == 0
        assert registry.removed_remote_ids == []


# ── Order sequence ───────────────────────────────────────────────


class TestOrderSequence:
    def test_append_rejects_duplicates(self):
        seq = OrderSequence([RemoteToken(1)])
        seq.append([RemoteToken(2), RemoteToken(1), RemoteToken(2)])
        assert seq.tokens == [RemoteToken(1), RemoteToken(2)]

    def test_remove_absent_is_noop(self):
        seq = OrderSequence([RemoteToken(1)])
        seq.remove(RemoteToken(5))
        assert seq.tokens == [RemoteToken(1)]

    def test_move_adjacent_boundaries_are_noops(self):
        a, b, c = RemoteToken(1), RemoteToken(2), RemoteToken(3)
        seq = OrderSequence([a, b, c])

        seq.move_adjacent(a, -1)
        seq.move_adjacent(c, +1)
        assert seq.tokens == [a, b, c]

    def test_move_adjacent_there_and_back(self):
        a, b, c = RemoteToken(1), RemoteToken(2), RemoteToken(3)
        seq = OrderSequence([a, b, c])

        seq.move_adjacent(a, +1)
        assert seq.tokens == [b, a, c]
        seq.move_adjacent(a, -1)
        assert seq.tokens == [a, b, c]

    def test_move_adjacent_ignores_bad_direction(self):
        a, b = RemoteToken(1), RemoteToken(2)
        seq = OrderSequence([a, b])
        seq.move_adjacent(a, 2)
        assert seq.tokens == [a, b]

    @pytest.mark.parametrize(
        "source, target, expected",
        [
            (4, 2, [1, 4, 2, 3]),
            (1, 3, [2, 1, 3, 4]),
            (1, 4, [2, 3, 1, 4]),
            (2, 1, [2, 1, 3, 4]),
        ],
    )
    def test_move_before(self, source, target, expected):
        seq = OrderSequence(RemoteToken(i) for i in (1, 2, 3, 4))
        seq.move_before(RemoteToken(source), RemoteToken(target))
        assert seq.tokens == [RemoteToken(i) for i in expected]

    def test_move_before_self_or_missing_is_noop(self):
        seq = OrderSequence([RemoteToken(1), RemoteToken(2)])
        seq.move_before(RemoteToken(1), RemoteToken(1))
        seq.move_before(RemoteToken(9), RemoteToken(1))
        seq.move_before(RemoteToken(1), RemoteToken(9))
        assert seq.tokens == [RemoteToken(1), RemoteToken(2)]

    def test_operations_on_empty_sequence(self):
        seq = OrderSequence()
        seq.remove(RemoteToken(1))
        seq.move_adjacent(RemoteToken(1), 1)
        seq.move_before(RemoteToken(1), RemoteToken(2))
        assert seq.tokens == []
        assert seq.to_canonical_encoding(MediaTokenRegistry()) == []


# ── Reconciliation ───────────────────────────────────────────────


class TestCanonicalEncoding:
    def test_dangling_tokens_are_skipped(self):
        registry = seeded_registry(1)
        registry.order.append([RemoteToken(42), LocalToken("gone")])

        assert len(registry.order) == 3
        assert registry.order.effective_count(registry) == 1
        assert encoding(registry) == [{"kind": "remote", "id": 1}]

    def test_batch_indices_are_recomputed_after_removal(self):
        registry = seeded_registry(1)
        a, b, c = registry.add_local([make_file("a.png"), make_file("b.png"), make_file("c.png")])
        registry.remove_local(a)
        registry.order.move_before(c, RemoteToken(1))

        refs = registry.order.to_canonical_encoding(registry)
        assert refs == [
            LocalOrderRef(batch_index=0),
            RemoteOrderRef(id=1),
            LocalOrderRef(batch_index=1),
        ]
        files = registry.order.ordered_local_files(registry)
        assert [f.filename for f in files] == ["c.png", "b.png"]

    def test_local_indices_form_contiguous_range(self):
        registry = seeded_registry(5, 6)
        tokens = registry.add_local([make_file(f"{i}.png") for i in range(6)])
        registry.remove(tokens[1])
        registry.remove(tokens[4])
        registry.remove(RemoteToken(5))
        registry.order.move_before(tokens[5], RemoteToken(6))
        registry.order.move_adjacent(tokens[0], +1)

        indices = [
            r.batch_index
            for r in registry.order.to_canonical_encoding(registry)
            if isinstance(r, LocalOrderRef)
        ]
        assert indices == list(range(4))

    def test_mixed_edit_scenario(self):
        registry = seeded_registry(1, 2)
        f1, f2 = make_file("f1.png"), make_file("f2.png")
        t1, t2 = registry.add_local([f1, f2])

        registry.mark_remote_removed(RemoteToken(1))
        registry.order.move_before(t2, t1)

        assert registry.order.tokens == [RemoteToken(2), t2, t1]
        assert encoding(registry) == [
            {"kind": "remote", "id": 2},
            {"kind": "local", "batch_index": 0},
            {"kind": "local", "batch_index": 1},
        ]
        assert registry.order.ordered_local_files(registry) == [f2, f1]
        assert registry.removed_remote_ids == [1]

    def test_encoding_does_not_mutate_state(self):
        registry = seeded_registry(1)
        registry.add_local([make_file("a.png")])
        before = registry.order.tokens

        registry.order.to_canonical_encoding(registry)
        registry.order.ordered_local_files(registry)

        assert registry.order.tokens == before
        assert len(registry) == 2


# ── Random operation sequences ───────────────────────────────────


def run_random_edit(rng, registry, steps=60):
    issued = list(registry.order.tokens)

    for _ in range(steps):
        op = rng.choice(["add", "remove", "adjacent", "before", "stale"])
        live = registry.order.live_tokens(registry)

        if op == "add":
            names = [f"f{rng.randrange(1000)}.png" for _ in range(rng.randint(1, 3))]
            issued.extend(registry.add_local(make_file(n) for n in names))
        elif op == "remove" and live:
            registry.remove(rng.choice(live))
        elif op == "adjacent" and live:
            registry.order.move_adjacent(rng.choice(live), rng.choice([-1, 1]))
        elif op == "before" and live:
            registry.order.move_before(rng.choice(live), rng.choice(live))
        elif op == "stale" and issued:
            # already-removed or never-live tokens
            registry.remove(rng.choice(issued))
            registry.remove(LocalToken(f"stale{rng.randrange(100)}"))
            registry.remove(RemoteToken(1000 + rng.randrange(100)))


@pytest.mark.parametrize("seed", range(50))
def test_random_sequences_keep_encoding_consistent(seed):
    rng = random.Random(seed)
    registry = seeded_registry(*range(1, rng.randint(0, 5) + 1))
    run_random_edit(rng, registry)

    live_items = [t for t in registry.order if registry.get(t) is not None]
    assert registry.order.effective_count(registry) == len(live_items) == len(registry)
    assert len(set(registry.order.tokens)) == len(registry.order)

    refs = registry.order.to_canonical_encoding(registry)
    files = registry.order.ordered_local_files(registry)

    remote_ids = [r.id for r in refs if isinstance(r, RemoteOrderRef)]
    assert all(registry.is_live(RemoteToken(i)) for i in remote_ids)
    assert not set(remote_ids) & set(registry.removed_remote_ids)

    batch = [r.batch_index for r in refs if isinstance(r, LocalOrderRef)]
    assert batch == list(range(len(files)))
    assert len(refs) == registry.order.effective_count(registry)
