from concurrent.futures import ThreadPoolExecutor

import pytest

from dealz_crawler.adapters.registry import PageClassifier
from dealz_crawler.engines.frontier import EnqueueResult, Frontier, FrontierOrder

from catalog import category_url, product_url


@pytest.fixture
def frontier():
    return Frontier(PageClassifier().accepts)


def test_session_token_variants_collapse_to_one_entry(frontier):
    plain = category_url("300")
    crufty = ("https://www.ebucks.com/web/shop/categorySelected.do;jsessionid=ABC"
              "?catId=300&extraInfo=cellphone_number")
    assert frontier.enqueue(plain) is EnqueueResult.QUEUED
    assert frontier.enqueue(crufty) is EnqueueResult.ALREADY_VISITED
    assert frontier.size() == 1


def test_reenqueue_is_a_noop(frontier):
    url = product_url("1", "2")
    frontier.enqueue(url)
    entry = frontier.dequeue()
    assert entry is not None
    assert frontier.enqueue(url) is EnqueueResult.ALREADY_VISITED
    assert frontier.size() == 0
    assert frontier.has_visited(url)


@pytest.mark.parametrize("url, expected", [
    ("", EnqueueResult.MISSING_URL),
    ("   ", EnqueueResult.MISSING_URL),
    ("https://www.example.com/web/shop/shopHome.do", EnqueueResult.NO_MATCH),
    ("https://www.ebucks.com/static/logo.png", EnqueueResult.NO_MATCH),
    ("https://www.ebucks.com/web/shop/productSelected.do?prodId=1", EnqueueResult.NO_MATCH),
])
def test_refusals_are_results_not_errors(frontier, url, expected):
    result = frontier.enqueue(url)
    assert result is expected
    assert not result.queued
    assert frontier.size() == 0


def test_entries_keep_raw_and_canonical_forms(frontier):
    raw = "https://www.ebucks.com/web/shop/productSelected.do?catId=1&prodId=2&extraInfo=x"
    frontier.enqueue(raw)
    entry = frontier.dequeue()
    assert entry.url == product_url("1", "2")
    assert entry.raw_url == raw
    assert entry.attempts == 0


def test_fifo_and_lifo_ordering():
    urls = [category_url(str(i)) for i in range(3)]

    fifo = Frontier(order="fifo")
    lifo = Frontier(order=FrontierOrder.LIFO)
    for u in urls:
        fifo.enqueue(u)
        lifo.enqueue(u)

    assert [fifo.dequeue().url for _ in urls] == urls
    assert [lifo.dequeue().url for _ in urls] == list(reversed(urls))
    assert fifo.dequeue() is None
    assert lifo.dequeue() is None


def test_concurrent_enqueue_claims_each_url_once():
    frontier = Frontier()
    urls = [product_url(str(i % 10), str(i)) for i in range(200)]

    with ThreadPoolExecutor(max_workers=16) as pool:
        results = list(pool.map(frontier.enqueue, urls * 8))

    assert sum(r.queued for r in results) == len(urls)
    assert frontier.size() == len(urls)
    assert len(frontier.visited) == len(urls)


def test_pending_until_dequeued(frontier):
    url = product_url("3", "8")
    assert frontier.is_pending(url) is False
    frontier.enqueue(url + "&extraInfo=x")
    assert frontier.is_pending(url) is True
    frontier.dequeue()
    assert frontier.is_pending(url) is False
    assert frontier.has_visited(url) is True
