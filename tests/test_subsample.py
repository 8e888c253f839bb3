import numpy as np
import pytest

from fastqset.models import RawReadSet, ReadType, Record
from fastqset.subsample import (
    SubsampleFilter,
    accept,
    acceptance_mask,
    make_seed,
    subsample_uniform,
    subsample_uniforms,
)


def test_uniform_is_deterministic_and_in_range():
    values = [subsample_uniform(42, f"read{i}") for i in range(1000)]
    assert values == [subsample_uniform(42, f"read{i}") for i in range(1000)]
    assert all(0.0 <= v < 1.0 for v in values)


def test_seed_changes_the_draw():
    a = subsample_uniforms(1, range(100))
    b = subsample_uniforms(2, range(100))
    assert not np.array_equal(a, b)


def test_int_and_str_keys_are_distinct():
    assert subsample_uniform(5, 7) != subsample_uniform(5, "7")
    assert subsample_uniform(5, "7") == subsample_uniform(5, b"7")


def test_acceptance_fraction_converges_to_rate():
    keys = [f"M0:1:FC:1:{i}" for i in range(20000)]
    for rate in (0.1, 0.5, 0.9):
        frac = acceptance_mask(123, keys, rate).mean()
        assert abs(frac - rate) < 0.02


def test_rate_bounds():
    keys = list(range(500))
    assert not acceptance_mask(9, keys, 0.0).any()
    assert acceptance_mask(9, keys, 1.0).all()
    with pytest.raises(ValueError):
        accept(9, "k", 1.5)
    with pytest.raises(ValueError):
        accept(9, "k", -0.1)


def test_lower_rate_keeps_a_subset():
    keys = range(2000)
    low = acceptance_mask(77, keys, 0.2)
    high = acceptance_mask(77, keys, 0.6)
    assert not (low & ~high).any()


def test_seed_validation():
    with pytest.raises(ValueError):
        subsample_uniform(-1, "k")
    with pytest.raises(ValueError):
        subsample_uniform(2**64, "k")
    with pytest.raises(TypeError):
        subsample_uniform(1.5, "k")  # type: ignore[arg-type]
    assert 0 <= subsample_uniform(2**64 - 1, "k") < 1


def test_make_seed():
    assert make_seed(3) == make_seed(3)
    s = make_seed()
    assert 0 <= s < 2**64
    SubsampleFilter(seed=s, rate=0.5)


def _raw(index: int, name: str) -> RawReadSet:
    return RawReadSet(
        index,
        {
            ReadType.R1: Record(header=f"{name}/1 1:N:0:A", seq=b"A", qual=b"I"),
            ReadType.R2: Record(header=f"{name}/2 2:N:0:A", seq=b"A", qual=b"I"),
        },
    )


def test_filter_keys():
    by_header = SubsampleFilter(seed=3, rate=0.5)
    by_index = SubsampleFilter(seed=3, rate=0.5, by="index")
    raw = _raw(4, "mol")
    assert by_header.key_for(raw) == "mol"
    assert by_index.key_for(raw) == 4
    with pytest.raises(ValueError):
        SubsampleFilter(seed=3, rate=0.5, by="position")


def test_filter_is_independent_of_position():
    filt = SubsampleFilter(seed=99, rate=0.4)
    items = [_raw(i, f"mol{i}") for i in range(300)]
    kept = [r.index for r in filt.filter(items)]
    shifted = [_raw(i + 1000, f"mol{i}") for i in range(150, 300)]
    kept_tail = [r.index - 1000 for r in filt.filter(shifted)]
    assert kept_tail == [i for i in kept if i >= 150]
