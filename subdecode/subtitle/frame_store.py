"""
자막 스냅샷 저장소 모듈입니다.

역할:
- 디코더가 전달한 SubtitleFrame을 part_id별 최신 스냅샷으로 유지
- 시작 시각 순 전체 조회, 특정 시각에 표시할 자막 조회
- 표시 스레드와 수집 코루틴이 동시에 접근할 수 있도록 RLock으로 보호

사용 예시:
    >>> store = FrameStore()
    >>> store.put(frame)
    >>> store.active_at(12.5)
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from subdecode.subtitle import SubtitleFrame, SubtitlePart

logger = logging.getLogger(__name__)


class FrameStore:
    """
    part_id별로 가장 높은 version의 SubtitlePart를 보관하는 저장소입니다.

    같은 version 이하의 스냅샷이 늦게 도착하면 무시합니다.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._parts: dict[int, SubtitlePart] = {}
        self._stale_count: int = 0

    def put(self, frame: SubtitleFrame) -> bool:
        """
        프레임의 스냅샷을 저장합니다.

        파라미터:
            frame (SubtitleFrame): 디코더가 전달한 프레임

        반환값:
            bool: 저장되었으면 True, 이미 같거나 높은 version이 있으면 False
        """
        part = frame.part
        with self._lock:
            current = self._parts.get(part.part_id)
            if current is not None and current.version >= part.version:
                self._stale_count += 1
                logger.debug(
                    f"오래된 스냅샷 무시: part_id={part.part_id}, "
                    f"version={part.version} <= {current.version}"
                )
                return False
            self._parts[part.part_id] = part
            return True

    def get(self, part_id: int) -> Optional[SubtitlePart]:
        """part_id의 최신 스냅샷을 반환합니다 (없으면 None)."""
        with self._lock:
            return self._parts.get(part_id)

    def parts(self) -> list[SubtitlePart]:
        """모든 최신 스냅샷을 (start, part_id) 순으로 반환합니다."""
        with self._lock:
            snapshot = list(self._parts.values())
        return sorted(snapshot, key=lambda p: (p.start, p.part_id))

    def active_at(self, seconds: float) -> list[SubtitlePart]:
        """
        주어진 시각에 표시해야 할 자막을 반환합니다.

        종료 시각이 보정되지 않은 자막(end == start)은 시작 이후 계속 표시 대상입니다.

        파라미터:
            seconds: 트랙 기준 시각 (초)

        반환값:
            list[SubtitlePart]: 시작 시각 순 자막 목록
        """
        return [
            part for part in self.parts()
            if part.start <= seconds and (part.is_open_ended or seconds <= part.end)
        ]

    def clear(self) -> None:
        with self._lock:
            self._parts.clear()

    @property
    def stale_count(self) -> int:
        return self._stale_count

    def __len__(self) -> int:
        with self._lock:
            return len(self._parts)
