from __future__ import annotations

from conftest import ADMIN_ID, OTHER_ADMIN_ID, FakeNotifier, make_user
from tutorbot.services.broadcast.service import broadcast, recipients_for


async def test_failures_are_isolated_and_counted():
    notifier = FakeNotifier(unreachable={2, 4})
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    report = await broadcast(notifier.send_text, [1, 2, 3, 4, 5], "hello", delay=0.1, sleep=fake_sleep)

    assert (report.total, report.sent, report.failed) == (5, 3, 2)
    assert report.failed_ids == [2, 4]
    assert report.success_rate == 60.0
    # every recipient was attempted, with a pause between consecutive sends
    assert [c[1] for c in notifier.calls] == [1, 2, 3, 4, 5]
    assert sleeps == [0.1] * 4
    assert "60.0%" in report.summary()


async def test_progress_reported_every_n():
    notifier = FakeNotifier()
    seen = []

    async def on_progress(report):
        seen.append(report.done)

    async def no_sleep(_):
        return None

    await broadcast(
        notifier.send_text, range(1, 26), "hi", delay=0, progress_every=10, on_progress=on_progress, sleep=no_sleep
    )

    assert seen == [10, 20]


async def test_duplicate_recipients_are_sent_once():
    notifier = FakeNotifier()

    async def no_sleep(_):
        return None

    report = await broadcast(notifier.send_text, [7, 7, 8], "hi", delay=0, sleep=no_sleep)
    assert report.total == 2
    assert [c[1] for c in notifier.calls] == [7, 8]


async def test_empty_audience():
    report = await broadcast(FakeNotifier().send_text, [], "hi", delay=0)
    assert (report.total, report.sent, report.failed, report.success_rate) == (0, 0, 0, 0.0)


async def test_audiences_skip_blocked_users(session):
    await make_user(session, 1, is_verified=True)
    await make_user(session, 2, is_verified=False)
    await make_user(session, 3, is_verified=True, blocked=True)
    await make_user(session, 4, is_verified=False, blocked=True)

    assert sorted(await recipients_for(session, "all")) == [1, 2]
    assert await recipients_for(session, "verified") == [1]
    assert await recipients_for(session, "unverified") == [2]
    assert await recipients_for(session, "admins") == [ADMIN_ID, OTHER_ADMIN_ID]
