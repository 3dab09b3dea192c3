"""
FrameStore 단위 테스트

검증 항목:
- part_id별 최신 version 유지, 오래된 스냅샷 무시
- 시작 시각 순 조회
- 특정 시각 표시 자막 조회 (닫히지 않은 자막 포함)
- 여러 스레드 동시 put
"""

from __future__ import annotations

import threading

from subdecode.markup import StyledText
from subdecode.media import Timebase
from subdecode.subtitle import SubtitleFrame, SubtitlePart
from subdecode.subtitle.frame_store import FrameStore


# =============================================================================
# 테스트 헬퍼
# =============================================================================

def _make_frame(
    part_id: int,
    start: float,
    end: float,
    version: int = 0,
    text: str = "자막",
) -> SubtitleFrame:
    part = SubtitlePart(
        part_id=part_id,
        start=start,
        end=end,
        version=version,
        text=StyledText.from_plain(text),
    )
    return SubtitleFrame(part=part, timebase=Timebase(1, 1000), position=int(start * 1000),
                         is_update=version > 0)


# =============================================================================
# 저장 테스트
# =============================================================================

def test_put_keeps_highest_version():
    store = FrameStore()

    assert store.put(_make_frame(0, 1.0, 1.0, version=0)) is True
    assert store.put(_make_frame(0, 1.0, 3.0, version=1)) is True

    assert len(store) == 1
    assert store.get(0).end == 3.0
    assert store.get(0).version == 1


def test_stale_snapshot_is_ignored():
    store = FrameStore()
    store.put(_make_frame(0, 1.0, 3.0, version=2))

    assert store.put(_make_frame(0, 1.0, 1.0, version=1)) is False
    assert store.put(_make_frame(0, 1.0, 1.0, version=2)) is False

    assert store.get(0).version == 2
    assert store.stale_count == 2


def test_get_unknown_part_returns_none():
    assert FrameStore().get(99) is None


def test_parts_are_ordered_by_start():
    store = FrameStore()
    store.put(_make_frame(2, 5.0, 6.0))
    store.put(_make_frame(0, 1.0, 2.0))
    store.put(_make_frame(1, 3.0, 4.0))

    assert [p.part_id for p in store.parts()] == [0, 1, 2]


def test_clear_removes_all_parts():
    store = FrameStore()
    store.put(_make_frame(0, 1.0, 2.0))
    store.clear()

    assert len(store) == 0
    assert store.parts() == []


# =============================================================================
# 표시 자막 조회 테스트
# =============================================================================

def test_active_at_returns_parts_containing_time():
    store = FrameStore()
    store.put(_make_frame(0, 1.0, 3.0, text="A"))
    store.put(_make_frame(1, 2.0, 4.0, text="B"))
    store.put(_make_frame(2, 5.0, 6.0, text="C"))

    assert [p.plain_text for p in store.active_at(2.5)] == ["A", "B"]
    assert [p.plain_text for p in store.active_at(4.5)] == []
    assert [p.plain_text for p in store.active_at(6.0)] == ["C"]


def test_open_ended_part_stays_active_until_repaired():
    store = FrameStore()
    store.put(_make_frame(0, 2.0, 2.0))

    assert len(store.active_at(100.0)) == 1
    assert store.active_at(1.0) == []

    store.put(_make_frame(0, 2.0, 5.0, version=1))

    assert store.active_at(100.0) == []


# =============================================================================
# 스레드 안전성 테스트
# =============================================================================

def test_concurrent_puts_keep_latest_versions():
    store = FrameStore()

    def writer(offset: int) -> None:
        for version in range(50):
            for part_id in range(offset, offset + 10):
                store.put(_make_frame(part_id, float(part_id), float(part_id) + 1, version=version))

    threads = [threading.Thread(target=writer, args=(i * 10,)) for i in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(store) == 40
    assert all(part.version == 49 for part in store.parts())
