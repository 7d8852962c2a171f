import argparse
import asyncio
import logging
import sys

from voice_input.config import cfg
from voice_input.errors import VoiceInputError
from voice_input.hotkey import HotkeyService
from voice_input.log_store import TranscriptLog
from voice_input.models import (
    LLM_REFINEMENT_FAILED,
    RECORDING_STARTED,
    RECORDING_STOPPED,
    SESSION_FAILED,
    TRANSCRIPTION_COMPLETE,
    OutputMode,
    SessionEvent,
)
from voice_input.refine.client import RefinementClient
from voice_input.refine.presets import PromptPreset
from voice_input.session import SessionCoordinator

logger = logging.getLogger("voice_input")


def terminal_observer(event: SessionEvent):
    if event.kind == RECORDING_STARTED:
        print("[REC] Recording... press the hotkey again to stop")
    elif event.kind == RECORDING_STOPPED:
        print("[REC] Processing...")
    elif event.kind == LLM_REFINEMENT_FAILED:
        print(f"[LLM] Refinement failed, keeping raw text: {event.payload}")
    elif event.kind == TRANSCRIPTION_COMPLETE:
        print(f"[TEXT] {event.payload}")
    elif event.kind == SESSION_FAILED:
        print(f"[ERROR] {event.payload}")


def print_recent_logs(limit: int):
    store = TranscriptLog()
    for entry in store.get_recent_logs(limit):
        stamp = entry.timestamp.astimezone().strftime("%Y-%m-%d %H:%M:%S")
        text = entry.refined_text or entry.raw_text
        suffix = f" (refined, {entry.prompt_preset})" if entry.refined_text else ""
        print(f"[{stamp}] {entry.id}{suffix}: {text}")


async def run(args):
    loop = asyncio.get_running_loop()
    coordinator = SessionCoordinator(log_store=TranscriptLog())
    coordinator.events.subscribe(terminal_observer)

    if not args.no_model:
        try:
            await coordinator.initialize_engine(args.model)
        except VoiceInputError as e:
            logger.error("%s; continuing in demo mode", e)

    if cfg.refine_enabled:
        try:
            client = RefinementClient()
        except VoiceInputError as e:
            logger.warning("%s", e)
        else:
            if not await asyncio.to_thread(client.is_available):
                logger.warning("LLM server not reachable at %s; raw text will be used", client.base_url)

    hotkeys = HotkeyService(coordinator, loop, cfg.hotkey_toggle)
    hotkeys.register()
    print(f"Ready. Press {cfg.hotkey_toggle} to start/stop recording. Ctrl+C to quit.")

    try:
        await asyncio.Event().wait()
    finally:
        hotkeys.unregister()
        if coordinator.capture.is_active:
            coordinator.capture.stop()


def main(argv=None):
    parser = argparse.ArgumentParser(prog="voice-input", description="Push-to-talk dictation")
    parser.add_argument("--model", default=None, help=f"Whisper model name (default: {cfg.asr_model})")
    parser.add_argument("--no-model", action="store_true", help="Do not load a model (demo mode)")
    parser.add_argument("--refine", dest="refine", action="store_true", default=None,
                        help="Enable LLM refinement")
    parser.add_argument("--no-refine", dest="refine", action="store_false", help="Disable LLM refinement")
    parser.add_argument("--preset", choices=[p.value for p in PromptPreset], default=None)
    parser.add_argument("--output-mode", choices=[m.value for m in OutputMode], default=None)
    parser.add_argument("--hotkey", default=None, help=f"Toggle hotkey (default: {cfg.hotkey_toggle})")
    parser.add_argument("--log-level", default=cfg.log_level)
    parser.add_argument("--logs", type=int, metavar="N", default=None,
                        help="Print the N most recent transcriptions and exit")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="[%(levelname)s] %(name)s: %(message)s",
    )

    if args.logs is not None:
        print_recent_logs(args.logs)
        return 0

    if args.refine is not None:
        cfg.refine_enabled = args.refine
    if args.preset:
        cfg.refine_preset = args.preset
    if args.output_mode:
        cfg.output_mode = args.output_mode
    if args.hotkey:
        cfg.hotkey_toggle = args.hotkey

    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        print("Stopping...")
    print("Done.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
