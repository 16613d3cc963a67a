#!/usr/bin/env python3
"""
Test Time Management
====================
Search budgets and the shared cancellation token.
"""

import threading
import time

from time_management import CancellationToken, SearchBudget
from bb_search_tree import SharedIncumbent


def test_unlimited_budget_never_stops():
    token = CancellationToken()
    token.start()
    for _ in range(100):
        token.tick()
    
    assert token.budget.is_unlimited
    assert not token.should_stop()
    assert token.remaining_time() is None


def test_node_limit_trips_token():
    token = CancellationToken(SearchBudget(node_limit=3))
    token.start()
    for _ in range(3):
        assert not token.should_stop()
        token.tick()
    
    assert token.should_stop()
    assert token.cancelled
    assert "node limit" in token.reason


def test_deadline_trips_token():
    token = CancellationToken(SearchBudget(time_limit=0.01))
    token.start()
    time.sleep(0.05)
    
    assert token.should_stop()
    assert token.remaining_time() == 0.0


def test_explicit_cancel_keeps_first_reason():
    token = CancellationToken()
    token.cancel("user request")
    token.cancel("second")
    
    assert token.should_stop()
    assert token.reason == "user request"
    assert token.get_statistics()["stop_reason"] == "user request"


def test_tick_is_thread_safe():
    token = CancellationToken()
    
    def work():
        for _ in range(1000):
            token.tick()
    
    threads = [threading.Thread(target=work) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    
    assert token.nodes == 4000


def test_shared_incumbent_keeps_best():
    seen = []
    incumbent = SharedIncumbent(listener=seen.append)
    
    assert not incumbent.found
    assert incumbent.offer(30, (1,))
    assert not incumbent.offer(30, (2,))
    assert not incumbent.offer(40, (3,))
    assert incumbent.offer(25, (4,))
    
    assert incumbent.cost == 25
    assert incumbent.values == (4,)
    assert incumbent.updates == 2
    assert seen == [30, 25]
