from __future__ import annotations

import threading

import pytest

from dspchat.client.custody import CustodyError, ReleaseTimeout, WriterBusy, WriterCustody


def test_acquire_and_release(writer):
    custody = WriterCustody(writer)
    assert custody.idle
    assert custody.acquire() is writer
    assert not custody.idle
    custody.release(writer)
    assert custody.peek() is writer


def test_second_acquire_is_rejected(writer):
    custody = WriterCustody(writer)
    custody.acquire()
    with pytest.raises(WriterBusy):
        custody.acquire()


def test_acquire_does_not_block_while_cell_is_touched(writer):
    custody = WriterCustody(writer)
    custody._lock.acquire()
    try:
        with pytest.raises(WriterBusy):
            custody.acquire()
    finally:
        custody._lock.release()
    assert custody.acquire() is writer


def test_double_release_is_an_error(writer):
    custody = WriterCustody(writer)
    with pytest.raises(CustodyError):
        custody.release(writer)


def test_release_gives_up_after_bounded_attempts(writer):
    custody = WriterCustody(writer, attempts=2, backoff=0.01)
    custody.acquire()
    custody._lock.acquire()
    try:
        with pytest.raises(ReleaseTimeout):
            custody.release(writer)
    finally:
        custody._lock.release()


def test_release_waits_out_short_contention(writer):
    custody = WriterCustody(writer, attempts=3, backoff=0.2)
    custody.acquire()
    custody._lock.acquire()
    timer = threading.Timer(0.05, custody._lock.release)
    timer.start()
    custody.release(writer)
    timer.join()
    assert custody.idle


def test_concurrent_acquires_only_one_wins(writer):
    custody = WriterCustody(writer)
    barrier = threading.Barrier(8)
    winners = []
    losers = []

    def attempt():
        barrier.wait()
        try:
            winners.append(custody.acquire())
        except WriterBusy:
            losers.append(True)

    threads = [threading.Thread(target=attempt) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert winners == [writer]
    assert len(losers) == 7


def test_blocking_release_waits_for_the_cell(writer):
    custody = WriterCustody(writer, attempts=1, backoff=0.01)
    custody.acquire()
    custody._lock.acquire()
    timer = threading.Timer(0.1, custody._lock.release)
    timer.start()
    custody.release(writer, blocking=True)
    timer.join()
    assert custody.peek() is writer


def test_blocking_release_still_rejects_occupied_slot(writer):
    custody = WriterCustody(writer)
    with pytest.raises(CustodyError):
        custody.release(writer, blocking=True)
