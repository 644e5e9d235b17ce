from filemerger.services.events import NotificationKind, NotificationLog


def test_sequence_numbers_and_polling():
    log = NotificationLog()
    first = log.emit(NotificationKind.progress, percent=0, message="Preparing files...")
    log.emit(NotificationKind.progress, percent=10, message="Loading PDF library...")
    log.emit(NotificationKind.failed, message="No valid files to process.")

    assert first.seq == 1
    assert [n.seq for n in log.since(1)] == [2, 3]
    assert log.since(3) == []
    assert log.last(NotificationKind.progress).payload["percent"] == 10
    assert log.last().kind is NotificationKind.failed
    assert first.to_dict()["kind"] == "progress"


def test_log_keeps_only_the_newest_entries():
    log = NotificationLog(max_entries=3)
    for percent in range(5):
        log.emit(NotificationKind.progress, percent=percent)

    assert len(log) == 3
    assert [n.payload["percent"] for n in log.since(0)] == [2, 3, 4]
    assert log.since(0)[0].seq == 3


def test_listeners_receive_notifications_and_failures_are_contained():
    log = NotificationLog()
    received = []

    def broken(notification):
        raise RuntimeError("listener bug")

    log.subscribe(broken)
    log.subscribe(received.append)
    log.emit(NotificationKind.succeeded, filename="merged-files-1.pdf")

    assert [n.payload["filename"] for n in received] == ["merged-files-1.pdf"]
