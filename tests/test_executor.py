"""InstagramExecutor: retry across accounts, batch runs, session repair."""

import asyncio

import pytest

from ig_scraper.config import PrivateCheckPolicy
from ig_scraper.platforms.instagram.constants import LOGIN_URL
from ig_scraper.platforms.instagram.errors import AllAccountsExhausted, LaunchFailure, ScraperError
from ig_scraper.platforms.instagram.executor import InstagramExecutor
from ig_scraper.utils.retry import RetryConfig

from .conftest import StubPage, StubPool, StubResponse, make_node, timeline_payload


def good_page(*nodes):
    nodes = nodes or (make_node("1", 100), make_node("2", 200))
    return StubPage(
        title="Profile (@someone) • Instagram photos and videos",
        reload_responses=[StubResponse(timeline_payload(*nodes))],
    )


def login_wall():
    return StubPage(logged_in=False)


def not_found():
    return StubPage(title="Page Not Found • Instagram")


@pytest.fixture
def make_executor(settings, ledger):
    def _make(page_for, repair=False, **overrides):
        for name, value in overrides.items():
            setattr(settings, name, value)
        pool = StubPool(page_for)
        executor = InstagramExecutor(
            settings, ledger, pool, verify_retry=RetryConfig(max_retries=1, delay=0, jitter=0),
        )
        repairs = []
        if not repair:
            executor.schedule_repair = lambda account: repairs.append(account.username)
        return executor, pool, repairs
    return _make


# ──────────────────────────────────────
# Single profile
# ──────────────────────────────────────

@pytest.mark.asyncio
async def test_fails_over_until_an_account_succeeds(make_executor, ledger):
    pages = {"bot_one": login_wall, "bot_two": not_found, "bot_three": good_page}
    executor, pool, repairs = make_executor(lambda account, url: pages[account]())

    outcome = await executor.scrape_profile("@nasa")

    assert outcome.success
    assert outcome.username == "nasa"
    assert outcome.scraped_with == "bot_three"
    assert [p.id for p in outcome.posts] == ["2", "1"]
    assert outcome.graphql_captured is True and outcome.warning is None

    assert "login required" in ledger.health("bot_one").failure_reason
    assert "Page Not Found" in ledger.health("bot_two").failure_reason
    assert ledger.health("bot_three").last_success is not None
    assert ledger.health("bot_three").consecutive_failures == 0
    assert repairs == ["bot_one", "bot_two"]
    assert len(pool.closed_tabs) == len(pool.tabs) == 3


@pytest.mark.asyncio
async def test_critical_failure_quarantines_account(make_executor, ledger):
    executor, pool, _ = make_executor(lambda account, url: good_page())
    pool.acquire_errors["bot_one"] = ScraperError("checkpoint challenge required")

    outcome = await executor.scrape_profile("nasa")

    assert outcome.scraped_with == "bot_two"
    health = ledger.health("bot_one")
    assert not health.is_active
    assert health.consecutive_failures == 1


@pytest.mark.asyncio
async def test_all_accounts_failing_raises_exhausted(make_executor):
    executor, _, repairs = make_executor(lambda account, url: login_wall())

    with pytest.raises(AllAccountsExhausted) as exc:
        await executor.scrape_profile("nasa")

    assert exc.value.attempts == 3
    assert "bot_three" in exc.value.last_error
    assert repairs == ["bot_one", "bot_two", "bot_three"]


@pytest.mark.asyncio
async def test_private_profile_is_a_successful_empty_outcome(make_executor, ledger):
    page = StubPage(private=True)
    executor, _, repairs = make_executor(lambda account, url: page)

    outcome = await executor.scrape_profile("secret")

    assert outcome.success
    assert outcome.posts == []
    assert outcome.error == "Account is private"
    assert outcome.scraped_with == "bot_one"
    assert page.reloads == 0
    assert ledger.health("bot_one").last_success is not None
    assert repairs == []


@pytest.mark.asyncio
async def test_inconclusive_private_check_passes_through_by_default(make_executor):
    def page_for(account, url):
        page = good_page()
        page.private_error = RuntimeError("execution context destroyed")
        return page

    executor, _, _ = make_executor(page_for)

    outcome = await executor.scrape_profile("nasa")

    assert outcome.scraped_with == "bot_one"
    assert len(outcome.posts) == 2


@pytest.mark.asyncio
async def test_inconclusive_private_check_retries_under_strict_policy(make_executor, ledger):
    def page_for(account, url):
        page = good_page()
        if account == "bot_one":
            page.private_error = RuntimeError("execution context destroyed")
        return page

    executor, _, _ = make_executor(page_for, private_check_policy=PrivateCheckPolicy.RETRY)

    outcome = await executor.scrape_profile("nasa")

    assert outcome.scraped_with == "bot_two"
    assert "private" in ledger.health("bot_one").failure_reason


@pytest.mark.asyncio
async def test_empty_capture_retries_under_strict_policy(make_executor, ledger):
    def page_for(account, url):
        return StubPage() if account == "bot_one" else good_page()

    executor, _, _ = make_executor(page_for, private_check_policy=PrivateCheckPolicy.RETRY)

    outcome = await executor.scrape_profile("nasa")

    assert outcome.scraped_with == "bot_two"
    assert outcome.graphql_captured is True
    assert "visibility unconfirmed" in ledger.health("bot_one").failure_reason


@pytest.mark.asyncio
async def test_date_threshold_keeps_only_newer_posts(make_executor):
    executor, _, _ = make_executor(lambda account, url: good_page())

    outcome = await executor.scrape_profile("nasa", created_at=150)

    assert [p.id for p in outcome.posts] == ["2"]
    assert outcome.posts_count == 1


@pytest.mark.asyncio
async def test_missing_capture_is_a_warning_not_a_failure(make_executor):
    executor, _, repairs = make_executor(lambda account, url: StubPage())

    outcome = await executor.scrape_profile("quiet")

    assert outcome.success
    assert outcome.graphql_captured is False
    assert "restricted" in outcome.warning
    assert repairs == []


# ──────────────────────────────────────
# Batch
# ──────────────────────────────────────

@pytest.mark.asyncio
async def test_batch_uses_one_account_and_one_session(make_executor, ledger):
    executor, pool, _ = make_executor(lambda account, url: good_page())

    batch = await executor.scrape_profiles(["nasa", "esa", "jaxa"])

    assert batch.success
    assert [r.username for r in batch.results] == ["nasa", "esa", "jaxa"]
    assert {r.scraped_with for r in batch.results} == {"bot_one"}
    assert ledger.usage_count("bot_one") == 1
    assert ledger.usage_count("bot_two") == 0
    assert ledger.usage_count("bot_three") == 0
    assert pool.acquired == ["bot_one"]
    assert pool.released == ["bot_one"]
    assert ledger.health("bot_one").last_success is not None


class InFlightPage(StubPage):
    """Timeline page that counts how many tabs are loading at once."""

    def __init__(self, tracker):
        super().__init__(
            title="Profile (@someone) • Instagram photos and videos",
            reload_responses=[StubResponse(timeline_payload(make_node("1", 100)))],
        )
        self.tracker = tracker

    async def reload(self, wait_until=None):
        self.tracker["now"] += 1
        self.tracker["peak"] = max(self.tracker["peak"], self.tracker["now"])
        await asyncio.sleep(0.01)
        self.tracker["now"] -= 1
        await super().reload(wait_until)


@pytest.mark.asyncio
async def test_batch_opens_at_most_window_tabs_at_once(make_executor):
    tracker = {"now": 0, "peak": 0}
    executor, pool, _ = make_executor(
        lambda account, url: InFlightPage(tracker), batch_tab_concurrency=2,
    )

    batch = await executor.scrape_profiles(["a", "b", "c", "d", "e"])

    assert batch.success and batch.total_profiles == 5
    assert tracker["peak"] == 2
    assert len(pool.tabs) == 5


@pytest.mark.asyncio
async def test_batch_moves_unfinished_targets_after_login_wall(make_executor, ledger):
    def page_for(account, url):
        if account == "bot_one" and "/esa/" in url:
            return login_wall()
        return good_page()

    executor, pool, repairs = make_executor(page_for)

    batch = await executor.scrape_profiles(["nasa", "esa", "jaxa"])

    assert batch.success
    assert [r.scraped_with for r in batch.results] == ["bot_one", "bot_two", "bot_two"]
    assert pool.released == ["bot_one", "bot_two"]
    assert repairs == ["bot_one"]
    assert ledger.health("bot_one").consecutive_failures == 1
    assert ledger.health("bot_two").last_success is not None


@pytest.mark.asyncio
async def test_batch_target_failure_is_reported_per_target(make_executor, ledger):
    def page_for(account, url):
        return not_found() if "/esa/" in url else good_page()

    executor, pool, repairs = make_executor(page_for)

    batch = await executor.scrape_profiles(["nasa", "esa"])

    assert not batch.success
    assert batch.successful_profiles == 1 and batch.failed_profiles == 1
    failed = batch.results[1]
    assert failed.scraped_with == "bot_one"
    assert "Page Not Found" in failed.error
    # mixed result leaves health untouched
    health = ledger.health("bot_one")
    assert health.last_success is None and health.last_failure is None
    assert repairs == []
    assert pool.acquired == ["bot_one"]


@pytest.mark.asyncio
async def test_batch_all_failed_marks_account(make_executor, ledger):
    executor, _, _ = make_executor(lambda account, url: not_found())

    batch = await executor.scrape_profiles(["nasa", "esa"])

    assert batch.failed_profiles == 2
    assert ledger.health("bot_one").failure_reason == "All parallel scrapes failed"


@pytest.mark.asyncio
async def test_batch_partial_exhaustion_fills_missing_targets(make_executor):
    def page_for(account, url):
        return login_wall() if "/esa/" in url else good_page()

    executor, _, _ = make_executor(page_for)

    batch = await executor.scrape_profiles(["nasa", "esa"])

    assert not batch.success
    assert batch.results[0].success
    assert batch.results[1].error == "All accounts exhausted"
    assert batch.results[1].scraped_with is None


@pytest.mark.asyncio
async def test_batch_with_no_progress_raises_exhausted(make_executor):
    executor, pool, _ = make_executor(lambda account, url: good_page())
    for name in ("bot_one", "bot_two", "bot_three"):
        pool.acquire_errors[name] = LaunchFailure(name, "browser closed")

    with pytest.raises(AllAccountsExhausted) as exc:
        await executor.scrape_profiles(["nasa", "esa"])

    assert exc.value.attempts == 3
    assert pool.released == ["bot_one", "bot_two", "bot_three"]


@pytest.mark.asyncio
async def test_batch_per_target_thresholds(make_executor):
    executor, _, _ = make_executor(lambda account, url: good_page())

    batch = await executor.scrape_profiles(
        ["nasa", "esa"], created_at=None, created_at_map={"nasa": 150},
    )

    assert [len(r.posts) for r in batch.results] == [1, 2]


@pytest.mark.asyncio
@pytest.mark.parametrize("usernames", [[], ["a", "b", "c", "d", "e", "f"]])
async def test_batch_size_is_validated(make_executor, usernames):
    executor, _, _ = make_executor(lambda account, url: good_page())

    with pytest.raises(ValueError):
        await executor.scrape_profiles(usernames)


# ──────────────────────────────────────
# Verification & repair
# ──────────────────────────────────────

def login_flow_pages(account, url):
    assert url == LOGIN_URL
    if account == "bot_one":
        return StubPage(logged_in=True)
    if account == "bot_two":
        return StubPage(logged_in=False)
    return StubPage(logged_in=False, login_form_missing=True)


@pytest.mark.asyncio
async def test_verify_all_sessions_logs_in_where_needed(make_executor):
    executor, pool, _ = make_executor(login_flow_pages)

    report = await executor.verify_all_sessions()

    assert report == {"bot_one": True, "bot_two": True, "bot_three": False}
    bot_two_page = pool.tabs[1].page
    assert bot_two_page.filled == {'input[name="username"]': "bot_two", 'input[name="password"]': "pw"}
    assert bot_two_page.clicked == ['button[type="submit"]']
    # one attempt for each live account, two for the broken one
    assert len(pool.tabs) == 4
    assert len(pool.closed_tabs) == 4


@pytest.mark.asyncio
async def test_repair_session_never_raises(make_executor, accounts):
    executor, pool, _ = make_executor(login_flow_pages, repair=True)
    pool.acquire_errors["bot_one"] = LaunchFailure("bot_one", "browser gone")

    assert await executor.repair_session(accounts[0]) is False
    assert await executor.repair_session(accounts[1]) is True
    assert await executor.repair_session(accounts[2]) is False
    assert pool.released == ["bot_one", "bot_two", "bot_three"]


@pytest.mark.asyncio
async def test_scheduled_repair_runs_in_background(make_executor, accounts):
    executor, pool, _ = make_executor(login_flow_pages, repair=True)

    executor.schedule_repair(accounts[1])
    assert executor.background_tasks == 1
    await asyncio.gather(*list(executor._background))

    assert pool.released == ["bot_two"]
    await executor.close()
    assert executor.background_tasks == 0
