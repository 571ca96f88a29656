from collections import Counter

import pytest

from soakload.jobs import TransferJob, generate_jobs


def test_four_identities_two_iterations():
    jobs = generate_jobs(4, 2)

    assert len(jobs) == 8
    assert all(j.sender != j.recipient for j in jobs)
    assert [(j.sender, j.recipient) for j in jobs[:4]] == [(0, 2), (1, 3), (2, 0), (3, 1)]
    assert [j.iteration for j in jobs] == [0, 0, 0, 0, 1, 1, 1, 1]


def test_generation_is_repeatable():
    assert generate_jobs(10, 3) == generate_jobs(10, 3)
    assert repr(generate_jobs(10, 3)).encode() == repr(generate_jobs(10, 3)).encode()


def test_even_population_is_balanced():
    n, iterations = 10, 4
    jobs = generate_jobs(n, iterations)

    sent = Counter(j.sender for j in jobs)
    received = Counter(j.recipient for j in jobs)
    assert set(sent.values()) == {iterations}
    assert set(received.values()) == {iterations}


def test_odd_population_uses_floor_offset():
    jobs = generate_jobs(3, 1)
    assert [(j.sender, j.recipient) for j in jobs] == [(0, 1), (1, 2), (2, 0)]


def test_jobs_are_immutable_values():
    job = generate_jobs(2, 1)[0]
    assert job == TransferJob(sender=0, recipient=1, iteration=0)
    with pytest.raises(AttributeError):
        job.sender = 5


def test_zero_iterations_is_empty():
    assert generate_jobs(4, 0) == ()


@pytest.mark.parametrize("n, iterations", [(0, 1), (-2, 1), (4, -1)])
def test_invalid_arguments(n, iterations):
    with pytest.raises(ValueError):
        generate_jobs(n, iterations)
