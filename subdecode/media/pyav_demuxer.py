"""
PyAV 기반 자막 트랙 디먹서 모듈입니다.

역할:
- 미디어 파일(MKV, MP4, TS ...)을 열고 자막 스트림 목록을 AssetTrack으로 제공
- 선택한 자막 트랙 하나의 패킷을 Packet으로 변환하여 순서대로 반환

사용 예시:
    >>> with PyAVDemuxer("movie.mkv") as demuxer:
    ...     track = demuxer.select_track(-1)
    ...     for packet in demuxer.iter_packets():
    ...         decoder.decode_frame(packet, on_frame)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterator, Optional

import av

from subdecode.media import AssetTrack, Packet, Timebase

logger = logging.getLogger(__name__)


class MediaOpenError(Exception):
    """미디어 파일을 열 수 없거나 자막 트랙을 찾지 못했을 때 발생하는 에러입니다."""
    pass


class PyAVDemuxer:
    """
    미디어 파일에서 자막 트랙 하나의 패킷을 꺼내는 디먹서 클래스입니다.

    컨테이너 I/O는 호출한 스레드에서 동기적으로 수행됩니다.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._container: Optional[Any] = None
        self._tracks: list[AssetTrack] = []
        self._selected: Optional[AssetTrack] = None
        self._packet_count: int = 0

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._container is not None

    @property
    def selected_track(self) -> Optional[AssetTrack]:
        return self._selected

    @property
    def packet_count(self) -> int:
        return self._packet_count

    # =========================================================================
    # 공개 인터페이스
    # =========================================================================

    def open(self) -> None:
        """
        미디어 파일을 열고 자막 스트림 목록을 읽습니다.

        에러:
            MediaOpenError: 파일이 없거나 컨테이너를 열 수 없을 때
        """
        if self._container is not None:
            return
        if not self._path.exists():
            raise MediaOpenError(f"미디어 파일을 찾을 수 없습니다: {self._path}")

        try:
            self._container = av.open(str(self._path))
        except av.error.FFmpegError as exc:
            raise MediaOpenError(f"미디어 파일 열기 실패: {self._path}, {exc}") from exc

        self._tracks = [_to_asset_track(s) for s in self._container.streams.subtitles]
        logger.info(
            f"미디어 열기 완료: {self._path.name}, 자막 트랙 {len(self._tracks)}개 "
            f"{[(t.index, t.codec_name, t.language) for t in self._tracks]}"
        )

    def subtitle_tracks(self) -> list[AssetTrack]:
        """자막 트랙 메타데이터 목록을 반환합니다."""
        self._require_open()
        return list(self._tracks)

    def select_track(self, index: int = -1) -> AssetTrack:
        """
        디먹스할 자막 트랙을 선택합니다.

        파라미터:
            index: 컨테이너 스트림 인덱스. -1이면 첫 번째 자막 트랙

        반환값:
            AssetTrack: 선택된 트랙

        에러:
            MediaOpenError: 자막 트랙이 없거나 해당 인덱스가 자막 트랙이 아닐 때
        """
        self._require_open()
        if not self._tracks:
            raise MediaOpenError(f"자막 트랙이 없습니다: {self._path}")

        if index < 0:
            track = self._tracks[0]
        else:
            track = next((t for t in self._tracks if t.index == index), None)
            if track is None:
                available = [t.index for t in self._tracks]
                raise MediaOpenError(
                    f"스트림 {index}은(는) 자막 트랙이 아닙니다 (사용 가능: {available})"
                )

        self._selected = track
        logger.info(f"자막 트랙 선택: index={track.index}, codec={track.codec_name}")
        return track

    def iter_packets(self) -> Iterator[Packet]:
        """
        선택된 트랙의 패킷을 순서대로 반환합니다.

        크기가 0인 플러시 패킷은 건너뜁니다. pts가 없는 패킷의 위치는 0입니다.
        """
        self._require_open()
        track = self._selected or self.select_track(-1)
        stream = self._container.streams[track.index]

        for av_packet in self._container.demux(stream):
            if av_packet.size == 0:
                continue
            self._packet_count += 1
            yield Packet(
                data=bytes(av_packet),
                position=int(av_packet.pts) if av_packet.pts is not None else 0,
                duration=int(av_packet.duration) if av_packet.duration else 0,
                track=track,
            )

        logger.info(f"디먹스 완료: track={track.index}, packets={self._packet_count}")

    def close(self) -> None:
        """컨테이너를 닫습니다. 여러 번 호출해도 안전합니다."""
        container, self._container = self._container, None
        if container is not None:
            container.close()
            logger.debug(f"미디어 닫기: {self._path.name}")

    def __enter__(self) -> "PyAVDemuxer":
        self.open()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # =========================================================================
    # 내부 메서드
    # =========================================================================

    def _require_open(self) -> None:
        if self._container is None:
            raise RuntimeError("PyAVDemuxer.open()이 먼저 호출되어야 합니다")


def _to_asset_track(stream: Any) -> AssetTrack:
    """PyAV 자막 스트림을 AssetTrack으로 변환합니다."""
    timebase = Timebase.from_fraction(stream.time_base)
    start_time = timebase.to_seconds(stream.start_time) if stream.start_time else 0.0

    codec_ctx = stream.codec_context
    extradata = bytes(codec_ctx.extradata) if codec_ctx is not None and codec_ctx.extradata else b""
    metadata = getattr(stream, "metadata", None) or {}

    return AssetTrack(
        index=stream.index,
        codec_name=codec_ctx.name if codec_ctx is not None else "",
        timebase=timebase,
        start_time=start_time,
        extradata=extradata,
        width=int(getattr(codec_ctx, "width", 0) or 0),
        height=int(getattr(codec_ctx, "height", 0) or 0),
        language=str(getattr(stream, "language", None) or metadata.get("language", "")),
    )
