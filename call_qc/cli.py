"""RU: Командная строка: ``call-qc transcribe`` и ``call-qc evaluate``.

EN: Command line: ``call-qc transcribe`` and ``call-qc evaluate``.
"""

from __future__ import annotations

import argparse
from dataclasses import replace
import json
import logging
from pathlib import Path
from typing import Any

from call_qc import __version__
from call_qc.config import AppConfig, ConfigError, build_pool, build_transport, load_config, openai_api_key
from call_qc.dialog.attribution import split_issues
from call_qc.dialog.consolidate import consolidate
from call_qc.dialog.formatting import format_annotated_dialog
from call_qc.dialog.turns import Turn
from call_qc.errors import EvaluationError, TranscriptionError
from call_qc.evaluation.escalator import EvaluationEscalator
from call_qc.evaluation.transport import OpenAIEvaluationConfig, OpenAIEvaluationTransport
from call_qc.progress import TqdmProgressSink
from call_qc.transcription.media import AudioAsset
from call_qc.transcription.orchestrator import JobOrchestrator
from call_qc.transcription.regions import REGIONS
from call_qc.utils.logging_utils import setup_logging

LOGGER = logging.getLogger("call_qc")


def _write_json(path: Path, data: Any) -> None:
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def _load_config(path: Path | None) -> AppConfig:
    try:
        return load_config(path)
    except ConfigError as exc:
        raise SystemExit(str(exc)) from exc


def cmd_transcribe(args: argparse.Namespace) -> int:
    """RU: Транскрибирует файл и пишет transcript.json.

    EN: Transcribe a file and write transcript.json.
    """
    if not args.input.exists():
        message = f"Input not found: {args.input}"
        raise SystemExit(message)

    cfg = _load_config(args.config)
    settings = cfg.transcription
    if args.provider:
        settings = replace(settings, provider=args.provider)
    region = args.region or settings.resolved_region()

    pool = build_pool(replace(cfg, transcription=settings))
    if not len(pool):
        message = f"Missing {settings.provider} API key. Add credentials to the config or set the env variable"
        raise SystemExit(message)

    orchestrator = JobOrchestrator(
        pool,
        build_transport(settings),
        region=region,
        poll_interval_s=settings.poll_interval_s,
        max_poll_attempts=settings.max_poll_attempts,
    )
    bar = TqdmProgressSink(desc=args.input.name, disable=bool(args.quiet))
    try:
        result = orchestrator.transcribe(
            AudioAsset.from_path(args.input),
            settings.options,
            progress=bar,
        )
    except TranscriptionError as exc:
        message = f"Transcription failed: {exc}"
        raise SystemExit(message) from exc
    finally:
        bar.close()

    outdir: Path = args.outdir
    outdir.mkdir(parents=True, exist_ok=True)
    data = result.to_dict()
    data["consolidated"] = [t.to_dict() for t in consolidate(result.turns)]
    out_path = outdir / "transcript.json"
    _write_json(out_path, data)
    LOGGER.info("Transcript saved: %s (%d turns)", out_path, len(result.turns))
    return 0


def _read_turns(path: Path) -> list[Turn]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        message = f"Failed to read transcript: {exc}"
        raise SystemExit(message) from exc
    if isinstance(data, dict):
        raw = data.get("turns") or data.get("utterances") or []
    else:
        raw = data
    if not isinstance(raw, list):
        raise SystemExit("Transcript has no turns list")
    return [Turn.from_dict(item) for item in raw if isinstance(item, dict)]


def cmd_evaluate(args: argparse.Namespace) -> int:
    """RU: Оценивает транскрипт и пишет evaluation.json и dialog.md.

    EN: Evaluate a transcript and write evaluation.json and dialog.md.
    """
    if not args.transcript.exists():
        message = f"Transcript not found: {args.transcript}"
        raise SystemExit(message)

    cfg = _load_config(args.config)
    settings = cfg.evaluation
    key = openai_api_key(settings)
    if not key:
        raise SystemExit("Missing OpenAI key. Set OPENAI_API_KEY or add evaluation.api_key to the config")

    turns = consolidate(_read_turns(args.transcript))
    if not turns:
        raise SystemExit("Transcript is empty")

    escalator = EvaluationEscalator(
        OpenAIEvaluationTransport(OpenAIEvaluationConfig(api_key=key, timeout_s=settings.timeout_s)),
        max_tokens=settings.max_tokens,
    )
    bar = TqdmProgressSink(desc="evaluate", disable=bool(args.quiet))
    try:
        result = escalator.evaluate(
            turns,
            args.model or settings.primary_model,
            args.escalated_model or settings.escalated_model,
            settings.confidence_threshold,
            progress=bar,
        )
    except EvaluationError as exc:
        raise SystemExit(str(exc)) from exc
    finally:
        bar.close()

    mapping, dropped = split_issues(turns, result.issues)
    if dropped:
        LOGGER.warning("%d issue(s) could not be matched to any turn", len(dropped))

    outdir: Path = args.outdir
    outdir.mkdir(parents=True, exist_ok=True)
    data = result.to_dict()
    data["attribution"] = {str(idx): [i.to_dict() for i in items] for idx, items in sorted(mapping.items())}
    data["dropped_issues"] = [i.to_dict() for i in dropped]
    _write_json(outdir / "evaluation.json", data)
    (outdir / "dialog.md").write_text(
        format_annotated_dialog(turns, mapping, title=args.transcript.stem),
        encoding="utf-8",
    )
    LOGGER.info(
        "Evaluation saved: score=%.0f, confidence=%.0f%%, model=%s",
        result.score,
        result.confidence * 100,
        result.model_used,
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", type=Path, help="Path to config.yaml")
    common.add_argument("--outdir", type=Path, default=Path("out"), help="Output directory")
    common.add_argument("--quiet", action="store_true", help="Only errors")
    common.add_argument("--verbose", action="store_true", help="Verbose logs")
    common.add_argument("--version", action="version", version=__version__)

    ap = argparse.ArgumentParser(prog="call-qc", description="Call recording quality control")
    ap.add_argument("--version", action="store_true")
    sub = ap.add_subparsers(dest="command")

    tr = sub.add_parser("transcribe", parents=[common], help="Transcribe an audio file")
    tr.add_argument("--input", type=Path, required=True, help="Path to the audio file")
    tr.add_argument("--region", choices=tuple(REGIONS), help="Override the configured region")
    tr.add_argument("--provider", choices=("assemblyai", "deepgram"), help="Override the configured provider")
    tr.set_defaults(func=cmd_transcribe)

    ev = sub.add_parser("evaluate", parents=[common], help="Evaluate a transcript")
    ev.add_argument("--transcript", type=Path, required=True, help="Path to transcript JSON file")
    ev.add_argument("--model", help="Primary model id")
    ev.add_argument("--escalated-model", help="Model used when confidence is low")
    ev.set_defaults(func=cmd_evaluate)
    return ap


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return 0
    if not getattr(args, "func", None):
        parser.print_help()
        return 2

    setup_logging(verbose=bool(args.verbose), quiet=bool(args.quiet))
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
