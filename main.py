"""
subdecode 자막 디코드 파이프라인 오케스트레이터

역할:
- 미디어 파일에서 자막 트랙 하나를 디먹스하여 SubtitleDecoder로 디코드
- 디코드는 전용 디코드 스레드(단일 워커 ThreadPoolExecutor)에서 수행
- 디코더 콜백이 전달한 SubtitleFrame을 asyncio.Queue로 넘겨 FrameStore에 수집
- SIGINT/SIGTERM 핸들러로 graceful shutdown
- 종료 시 수집한 자막을 SRT/VTT/PNG로 내보내기

실행 예시:
    첫 번째 자막 트랙 디코드:
        python main.py --input movie.mkv

    특정 트랙, 출력 디렉터리 지정:
        python main.py --config config.yaml --input movie.mkv --track 3 --output out/subs

    30초 후 자동 종료:
        python main.py --input movie.mkv --duration 30
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import Optional

from subdecode.codec.pyav_session import PyAVCodecSession
from subdecode.config.config_manager import ConfigLoadError, ConfigManager
from subdecode.config.schema import AppConfig
from subdecode.logging import StructuredLogger, setup_logging
from subdecode.media import AssetTrack
from subdecode.media.pyav_demuxer import MediaOpenError, PyAVDemuxer
from subdecode.subtitle import SubtitleFrame
from subdecode.subtitle.frame_store import FrameStore
from subdecode.subtitle.subtitle_decoder import SubtitleDecoder
from subdecode.subtitle.subtitle_exporter import SubtitleExporter

logger = logging.getLogger(__name__)


class Pipeline:
    """
    전체 파이프라인을 관리하는 오케스트레이터 클래스입니다.

    파이프라인 구조:
        [PyAVDemuxer] ─ Packet ─▶ [SubtitleDecoder]      (디코드 스레드)
                                        │ completion_handler
                                        ▼ run_coroutine_threadsafe
                                  frame_queue (asyncio.Queue)
                                        │
                                        ▼
                                  [FrameStore]          (이벤트 루프)
                                        │ 종료 시
                                        ▼
                                  [SubtitleExporter]
    """

    def __init__(self, config: AppConfig, input_path: str | Path) -> None:
        self._config = config
        self._input_path = Path(input_path)

        # 디코더 호출(decode_frame/flush/shutdown)은 모두 이 스레드에서만 수행
        self._decode_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="subdecode")

        self._demuxer: Optional[PyAVDemuxer] = None
        self._decoder: Optional[SubtitleDecoder] = None
        self._track: Optional[AssetTrack] = None
        self._store = FrameStore()
        self._exporter = SubtitleExporter()

        # 파이프라인 상태
        self._status: str = "idle"  # "idle" | "running" | "stopping" | "error"

        self._shutdown_event = asyncio.Event()
        # 디코드 스레드에 중단을 알리는 플래그
        self._stop_decoding = threading.Event()
        self._decode_finished = asyncio.Event()
        self._frame_queue: Optional[asyncio.Queue] = None
        self._tasks: list[asyncio.Task] = []

    @property
    def store(self) -> FrameStore:
        return self._store

    def get_status(self) -> str:
        """파이프라인의 현재 상태를 반환합니다."""
        return self._status

    async def run(self) -> None:
        """파이프라인을 시작하고 디코드 완료 또는 종료 신호를 기다립니다."""
        self._status = "running"
        self._shutdown_event = asyncio.Event()
        self._stop_decoding.clear()
        self._decode_finished = asyncio.Event()
        self._frame_queue = asyncio.Queue(maxsize=self._config.decoder.frame_queue_size)
        loop = asyncio.get_running_loop()
        logger.info(f"파이프라인 초기화 시작: input={self._input_path}")

        try:
            self._track = await loop.run_in_executor(self._decode_executor, self._open_media)
        except MediaOpenError as exc:
            logger.error(f"미디어 열기 실패: {exc}")
            self._status = "error"
            await self._shutdown()
            return

        if self._decoder is None or not self._decoder.is_active:
            logger.error(f"자막 디코더를 초기화하지 못했습니다: track={self._track.index}")
            self._status = "error"
            await self._shutdown()
            return

        logger.info("파이프라인 시작")

        tasks = [
            asyncio.create_task(self._decode_pipeline(loop), name="decode_pipeline"),
            asyncio.create_task(self._frame_consumer(), name="frame_consumer"),
        ]
        self._tasks = tasks

        shutdown_waiter = asyncio.create_task(self._shutdown_event.wait())
        try:
            # 종료 신호 또는 디코드 완료 대기
            done, _ = await asyncio.wait(
                [shutdown_waiter] + tasks,
                return_when=asyncio.FIRST_COMPLETED,
            )

            for task in done:
                if task is not shutdown_waiter and task.exception():
                    logger.error(f"파이프라인 태스크 오류: {task.exception()}")
                    self._status = "error"

        finally:
            shutdown_waiter.cancel()
            await self._shutdown()
            if self._status != "error":
                self._status = "idle"

    def request_shutdown(self) -> None:
        """외부(시그널 핸들러 등)에서 종료를 요청합니다."""
        self._stop_decoding.set()
        self._shutdown_event.set()

    async def _shutdown(self) -> None:
        """파이프라인을 순서대로 종료합니다."""
        logger.info("파이프라인 종료 시작")
        self._status = "stopping" if self._status != "error" else self._status
        self._stop_decoding.set()

        # 디코드 태스크가 끝나야 디코더를 닫을 수 있음. 소비자는 큐를 비운 뒤 스스로 종료
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        self._drain_queue()

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(self._decode_executor, self._close_media)
        self._decode_executor.shutdown(wait=True)

        if self._config.export.enabled and len(self._store) > 0:
            try:
                self._export()
            except OSError as exc:
                logger.error(f"자막 내보내기 실패: {exc}")
                self._status = "error"

        logger.info("파이프라인 종료 완료")

    # =========================================================================
    # 파이프라인 태스크
    # =========================================================================

    async def _decode_pipeline(self, loop: asyncio.AbstractEventLoop) -> None:
        """
        디코드 파이프라인: PyAVDemuxer → SubtitleDecoder → frame_queue

        디먹스/디코드 루프 전체를 디코드 스레드에서 실행합니다.
        큐가 가득 차면 디코드 스레드가 대기합니다 (중단 요청 시 프레임을 버림).
        """
        logger.info("디코드 파이프라인 시작")

        def on_frame(frame: SubtitleFrame) -> None:
            # 디코드 스레드 → 이벤트 루프
            future = asyncio.run_coroutine_threadsafe(self._frame_queue.put(frame), loop)
            while True:
                try:
                    future.result(timeout=1.0)
                    return
                except FutureTimeoutError:
                    if self._stop_decoding.is_set():
                        future.cancel()
                        logger.warning(f"종료 중 프레임 버림: part_id={frame.part.part_id}")
                        return

        try:
            await loop.run_in_executor(self._decode_executor, self._decode_all, on_frame)
        finally:
            self._decode_finished.set()

        logger.info("디코드 파이프라인 종료")

    async def _frame_consumer(self) -> None:
        """
        프레임 소비자: frame_queue → FrameStore

        디코드가 끝나고 큐가 비면 종료합니다.
        """
        logger.info("프레임 소비자 시작")

        while True:
            try:
                frame = await asyncio.wait_for(self._frame_queue.get(), timeout=0.5)
            except asyncio.TimeoutError:
                if self._decode_finished.is_set() and self._frame_queue.empty():
                    break
                continue
            self._collect(frame)

        logger.info(f"프레임 소비자 종료: parts={len(self._store)}")

    # =========================================================================
    # 디코드 스레드 전용 메서드
    # =========================================================================

    def _open_media(self) -> AssetTrack:
        """미디어를 열고 트랙을 선택한 뒤 디코더를 생성합니다."""
        self._demuxer = PyAVDemuxer(self._input_path)
        self._demuxer.open()
        track = self._demuxer.select_track(self._config.decoder.track_index)
        self._decoder = SubtitleDecoder(track, self._config, PyAVCodecSession.from_track)
        return track

    def _decode_all(self, on_frame) -> None:
        """선택된 트랙의 모든 패킷을 디코드합니다. 중단 플래그를 패킷마다 확인합니다."""
        for packet in self._demuxer.iter_packets():
            if self._stop_decoding.is_set():
                logger.info("디코드 중단 요청 수신")
                break
            self._decoder.decode_frame(packet, on_frame)

    def _close_media(self) -> None:
        if self._decoder is not None:
            stats = self._decoder.get_stats()
            logger.info(
                f"디코더 통계: events={stats.events_decoded}, frames={stats.frames_emitted}, "
                f"updates={stats.updates_emitted}, errors={stats.decode_errors}"
            )
            self._decoder.shutdown()
        if self._demuxer is not None:
            self._demuxer.close()

    # =========================================================================
    # 내부 헬퍼
    # =========================================================================

    def _collect(self, frame: SubtitleFrame) -> None:
        if self._store.put(frame):
            part = frame.part
            kind = "갱신" if frame.is_update else "신규"
            logger.debug(
                f"자막 {kind}: part_id={part.part_id} v{part.version} "
                f"[{part.start:.3f} → {part.end:.3f}] '{part.plain_text[:30]}'"
            )

    def _drain_queue(self) -> None:
        """큐에 남은 프레임을 모두 저장소로 옮깁니다."""
        if self._frame_queue is None:
            return
        while not self._frame_queue.empty():
            self._collect(self._frame_queue.get_nowait())

    def _export(self) -> None:
        """설정된 포맷으로 자막과 이미지를 저장합니다."""
        export_cfg = self._config.export
        output_dir = Path(export_cfg.output_dir)
        stem = f"{self._input_path.stem}.track{self._track.index}" if self._track else "subtitles"
        parts = self._store.parts()

        for fmt in export_cfg.format:
            filepath = output_dir / f"{stem}.{fmt}"
            if fmt == "srt":
                self._exporter.export_srt(parts, filepath)
            elif fmt == "vtt":
                self._exporter.export_vtt(parts, filepath)
            else:
                logger.warning(f"지원하지 않는 자막 포맷: {fmt}")

        if export_cfg.save_images:
            self._exporter.export_images(parts, output_dir / f"{stem}_images")

        logger.info(f"자막 파일 저장 완료: {output_dir} ({len(parts)}개 자막)")


# =============================================================================
# 진입점
# =============================================================================

def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """커맨드라인 인자를 파싱합니다."""
    parser = argparse.ArgumentParser(
        description="subdecode: 미디어 파일 자막 트랙 디코더"
    )
    parser.add_argument(
        "--config", default="config.yaml", help="설정 파일 경로 (기본: config.yaml)"
    )
    parser.add_argument(
        "--input", required=True, help="입력 미디어 파일 경로"
    )
    parser.add_argument(
        "--track", type=int, help="자막 스트림 인덱스 (config.yaml 오버라이드, -1=첫 자막 트랙)"
    )
    parser.add_argument(
        "--output", help="출력 디렉터리 (config.yaml 오버라이드)"
    )
    parser.add_argument(
        "--duration", type=int, default=0,
        help="실행 시간 제한 (초, 0=무제한)"
    )
    return parser.parse_args(argv)


def _apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """커맨드라인 인자를 설정에 반영합니다 (Pydantic 모델은 재생성)."""
    if args.track is None and not args.output:
        return config

    config_dict = config.model_dump()
    if args.track is not None:
        config_dict["decoder"]["track_index"] = args.track
    if args.output:
        config_dict["export"]["output_dir"] = args.output
    return AppConfig(**config_dict)


async def _run_with_timeout(pipeline: Pipeline, duration_sec: int) -> None:
    """파이프라인을 duration_sec 초 후에 자동 종료합니다."""
    if duration_sec > 0:
        await asyncio.sleep(duration_sec)
        logger.info(f"{duration_sec}초 경과, 파이프라인 자동 종료")
        pipeline.request_shutdown()


async def _main(argv: Optional[list[str]] = None) -> int:
    """비동기 메인 함수입니다. 프로세스 종료 코드를 반환합니다."""
    args = _parse_args(argv)

    manager = ConfigManager()
    try:
        config = manager.load(args.config)
    except ConfigLoadError as exc:
        logging.basicConfig(level=logging.INFO)
        logger.error(f"설정 로드 실패: {exc}")
        return 2

    config = _apply_overrides(config, args)
    setup_logging(config)

    logger.info(
        f"subdecode 시작: session_id={StructuredLogger.get_session_id()}, "
        f"input={args.input}, track={config.decoder.track_index}"
    )

    pipeline = Pipeline(config, args.input)

    # SIGINT/SIGTERM 핸들러 등록 (asyncio-safe 방식)
    loop = asyncio.get_running_loop()

    def _signal_handler():
        logger.info("종료 시그널 수신")
        pipeline.request_shutdown()

    loop.add_signal_handler(signal.SIGINT, _signal_handler)
    loop.add_signal_handler(signal.SIGTERM, _signal_handler)

    if args.duration > 0:
        timer = asyncio.create_task(_run_with_timeout(pipeline, args.duration))
        try:
            await pipeline.run()
        finally:
            timer.cancel()
    else:
        await pipeline.run()

    logger.info(f"subdecode 종료: status={pipeline.get_status()}")
    return 1 if pipeline.get_status() == "error" else 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(_main()))
