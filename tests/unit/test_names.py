"""Tests for TempNameAllocator."""

from __future__ import annotations

from slotsugar.names import TempNameAllocator, is_reserved


class TestTempNameAllocator:
    def test_names_carry_reserved_prefix_and_hint(self):
        allocator = TempNameAllocator()
        assert allocator.fresh("recv") == "$$recv_0"

    def test_counter_is_shared_across_hints(self):
        allocator = TempNameAllocator()
        names = [allocator.fresh("a"), allocator.fresh("b"), allocator.fresh("a")]
        assert names == ["$$a_0", "$$b_1", "$$a_2"]

    def test_names_never_repeat(self):
        allocator = TempNameAllocator()
        names = [allocator.fresh("t") for _ in range(50)]
        assert len(set(names)) == 50

    def test_hint_is_sanitised(self):
        allocator = TempNameAllocator()
        assert allocator.fresh("a-b c") == "$$abc_0"
        assert allocator.fresh("") == "$$t_1"

    def test_issued_records_every_name_in_order(self):
        allocator = TempNameAllocator()
        first = allocator.fresh()
        second = allocator.fresh("v")
        assert allocator.issued == (first, second)

    def test_separate_allocators_are_independent(self):
        assert TempNameAllocator().fresh() == TempNameAllocator().fresh()


class TestIsReserved:
    def test_generated_names_are_reserved(self):
        assert is_reserved(TempNameAllocator().fresh("x"))

    def test_ordinary_names_are_not_reserved(self):
        assert not is_reserved("x")
        assert not is_reserved("$x")
        assert not is_reserved("_$$x")
