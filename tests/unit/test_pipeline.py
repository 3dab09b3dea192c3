"""
Pipeline (main.py) 단위 테스트

검증 항목:
- 커맨드라인 인자 파싱 및 설정 오버라이드
- 가짜 디먹서/코덱으로 전체 파이프라인 실행 → FrameStore 수집, SRT 저장
- 미디어 열기 실패 / 코덱 초기화 실패 시 error 상태
- 종료 요청 시 디코드 중단
"""

from __future__ import annotations

import asyncio
import threading
from types import SimpleNamespace

import pytest

import main
from subdecode.codec import CodecInitError, DecodedEvent, RectType, SubtitleRect
from subdecode.config.schema import AppConfig
from subdecode.media import AssetTrack, Packet, Timebase
from subdecode.media.pyav_demuxer import MediaOpenError


# =============================================================================
# 테스트 헬퍼
# =============================================================================

TRACK = AssetTrack(index=2, codec_name="subrip", timebase=Timebase(1, 1000))


class FakeDemuxer:
    """미리 정한 위치(ms)의 패킷을 돌려주는 디먹서입니다."""

    positions: list[int] = [0, 2000, 5000]
    fail_open: bool = False
    instances: list["FakeDemuxer"] = []

    def __init__(self, path) -> None:
        self.path = path
        self.closed = False
        FakeDemuxer.instances.append(self)

    def open(self) -> None:
        if self.fail_open:
            raise MediaOpenError(f"미디어 파일을 찾을 수 없습니다: {self.path}")

    def select_track(self, index: int = -1) -> AssetTrack:
        return TRACK

    def iter_packets(self):
        for position in self.positions:
            yield Packet(data=b"x", position=position, duration=0, track=TRACK)

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """패킷마다 'line@위치' 텍스트의 열린 자막 이벤트를 생성합니다."""

    def __init__(self, gate: threading.Event | None = None) -> None:
        self.gate = gate
        self.closed = False

    def decode(self, packet: Packet):
        if self.gate is not None:
            self.gate.wait(timeout=5.0)
        rect = SubtitleRect(RectType.TEXT, text=f"line@{packet.position}")
        return True, DecodedEvent(rects=[rect])

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_media(monkeypatch):
    FakeDemuxer.positions = [0, 2000, 5000]
    FakeDemuxer.fail_open = False
    FakeDemuxer.instances = []
    sessions: list[FakeSession] = []

    def from_track(track, options):
        session = FakeSession()
        sessions.append(session)
        return session

    monkeypatch.setattr(main, "PyAVDemuxer", FakeDemuxer)
    monkeypatch.setattr(main, "PyAVCodecSession", SimpleNamespace(from_track=from_track))
    return sessions


def _make_config(tmp_path, **export) -> AppConfig:
    export_cfg = {"format": ["srt"], "save_images": False, "output_dir": str(tmp_path / "out")}
    export_cfg.update(export)
    return AppConfig(**{"export": export_cfg})


# =============================================================================
# CLI 테스트
# =============================================================================

def test_parse_args_defaults():
    args = main._parse_args(["--input", "movie.mkv"])

    assert args.input == "movie.mkv"
    assert args.config == "config.yaml"
    assert args.track is None
    assert args.output is None
    assert args.duration == 0


def test_parse_args_requires_input():
    with pytest.raises(SystemExit):
        main._parse_args([])


def test_apply_overrides_rebuilds_config():
    config = AppConfig()
    args = main._parse_args(["--input", "a.mkv", "--track", "3", "--output", "out/dir"])

    updated = main._apply_overrides(config, args)

    assert updated.decoder.track_index == 3
    assert updated.export.output_dir == "out/dir"
    assert config.decoder.track_index == -1


def test_apply_overrides_without_flags_returns_same_config():
    config = AppConfig()
    assert main._apply_overrides(config, main._parse_args(["--input", "a.mkv"])) is config


# =============================================================================
# 파이프라인 실행 테스트
# =============================================================================

@pytest.mark.asyncio
async def test_pipeline_collects_frames_and_exports_srt(tmp_path, fake_media):
    pipeline = main.Pipeline(_make_config(tmp_path), tmp_path / "movie.mkv")

    await pipeline.run()

    assert pipeline.get_status() == "idle"
    parts = pipeline.store.parts()
    assert [(p.start, p.end) for p in parts] == [(0.0, 2.0), (2.0, 5.0), (5.0, 5.0)]
    assert fake_media[0].closed is True
    assert FakeDemuxer.instances[0].closed is True

    srt = (tmp_path / "out" / "movie.track2.srt").read_text(encoding="utf-8")
    assert srt.startswith("1\n00:00:00,000 --> 00:00:02,000\nline@0\n")
    assert "2\n00:00:02,000 --> 00:00:05,000\nline@2000\n" in srt


@pytest.mark.asyncio
async def test_pipeline_export_disabled_writes_nothing(tmp_path, fake_media):
    pipeline = main.Pipeline(_make_config(tmp_path, enabled=False), tmp_path / "movie.mkv")

    await pipeline.run()

    assert len(pipeline.store) == 3
    assert not (tmp_path / "out").exists()


@pytest.mark.asyncio
async def test_pipeline_media_open_failure_sets_error(tmp_path, fake_media):
    FakeDemuxer.fail_open = True
    pipeline = main.Pipeline(_make_config(tmp_path), tmp_path / "missing.mkv")

    await pipeline.run()

    assert pipeline.get_status() == "error"
    assert len(pipeline.store) == 0


@pytest.mark.asyncio
async def test_pipeline_codec_init_failure_sets_error(tmp_path, monkeypatch):
    monkeypatch.setattr(FakeDemuxer, "fail_open", False)
    monkeypatch.setattr(FakeDemuxer, "instances", [])

    def from_track(track, options):
        raise CodecInitError("지원하지 않는 코덱")

    monkeypatch.setattr(main, "PyAVDemuxer", FakeDemuxer)
    monkeypatch.setattr(main, "PyAVCodecSession", SimpleNamespace(from_track=from_track))
    pipeline = main.Pipeline(_make_config(tmp_path), tmp_path / "movie.mkv")

    await pipeline.run()

    assert pipeline.get_status() == "error"
    assert FakeDemuxer.instances[0].closed is True


@pytest.mark.asyncio
async def test_request_shutdown_stops_decoding(tmp_path, monkeypatch):
    gate = threading.Event()

    monkeypatch.setattr(FakeDemuxer, "positions", list(range(0, 100_000, 1000)))
    monkeypatch.setattr(FakeDemuxer, "fail_open", False)
    monkeypatch.setattr(main, "PyAVDemuxer", FakeDemuxer)
    monkeypatch.setattr(
        main, "PyAVCodecSession", SimpleNamespace(from_track=lambda track, options: FakeSession(gate))
    )
    pipeline = main.Pipeline(_make_config(tmp_path, enabled=False), tmp_path / "movie.mkv")

    # 첫 패킷 디코드가 게이트에서 대기하는 동안 종료 요청
    run_task = asyncio.create_task(pipeline.run())
    await asyncio.sleep(0.2)
    pipeline.request_shutdown()
    gate.set()
    await run_task

    assert len(pipeline.store) < len(FakeDemuxer.positions)
    assert pipeline.get_status() == "idle"
