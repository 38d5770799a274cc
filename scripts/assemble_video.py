import argparse
import json
import logging
import mimetypes
import sys
from pathlib import Path

from dotenv import load_dotenv

from slideshow_agent import PipelineConfig, VideoAssemblyAgent
from slideshow_agent.config import SubtitleConfig, TextClientConfig, ToolConfig, VideoConfig
from slideshow_agent.errors import AssemblyError, ConfigurationError, InputValidationError
from slideshow_agent.text_client import build_text_client
from slideshow_agent.types import AudioTrack, ImageAsset, SubtitleStyle


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Assemble narrated slideshow videos and burn subtitles into them.")
    parser.add_argument("--workdir", type=Path, default=Path("temp"), help="Directory for intermediate and output files.")
    parser.add_argument("--ffmpeg", type=str, default="ffmpeg", help="ffmpeg executable name or path.")
    parser.add_argument("--ffprobe", type=str, default="ffprobe", help="ffprobe executable name or path.")
    parser.add_argument("--timeout", type=float, default=600.0, help="Seconds before a single ffmpeg call is killed.")
    parser.add_argument("--log-level", type=str, default="INFO", help="Logging level (DEBUG, INFO, WARNING, ERROR).")
    subparsers = parser.add_subparsers(dest="command", required=True)

    assemble = subparsers.add_parser("assemble", help="Build a subtitle-free video from images and narration.")
    assemble.add_argument("--image", type=Path, action="append", required=True, help="Image file; repeat in display order.")
    assemble.add_argument("--audio", type=Path, required=True, help="Narration audio file.")
    assemble.add_argument("--target-duration", type=float, help="Force the video to this many seconds.")
    assemble.add_argument("--output", type=Path, help="Path of the finished MP4.")
    assemble.add_argument("--width", type=int, default=1920, help="Output width in pixels.")
    assemble.add_argument("--height", type=int, default=1080, help="Output height in pixels.")
    assemble.add_argument("--fps", type=int, default=30, help="Output frame rate.")
    assemble.add_argument("--parallel", type=int, default=1, help="Number of image segments rendered at once.")

    subtitles = subparsers.add_parser("subtitles", help="Render an ASS subtitle file from word timestamps.")
    subtitles.add_argument("--words", type=Path, required=True, help="JSON list of {word, startTime, endTime}.")
    subtitles.add_argument("--audio-duration", type=float, required=True, help="Narration duration in seconds.")
    subtitles.add_argument("--output", type=Path, help="Path of the ASS file.")
    subtitles.add_argument("--color", type=str, default="#FFFFFF", help="Text color (#RRGGBB).")
    subtitles.add_argument("--font-size", type=int, default=20, help="Font size on the 1920x1080 canvas.")
    subtitles.add_argument("--font-family", type=str, default="Arial", help="Font family.")
    subtitles.add_argument("--outline-color", type=str, default="#000000", help="Outline color (#RRGGBB).")
    subtitles.add_argument("--outline-width", type=float, default=2, help="Outline width.")
    subtitles.add_argument("--srt", action="store_true", help="Also write an SRT file next to the ASS file.")
    subtitles.add_argument("--narration-language", type=str, help="Language of the narration (e.g. en, sw-KE).")
    subtitles.add_argument("--timestamp-language", type=str, help="Language the word timestamps were recognized in.")

    burn = subparsers.add_parser("burn", help="Burn an ASS subtitle file into a finished video.")
    burn.add_argument("video", type=Path, help="Subtitle-free video.")
    burn.add_argument("subtitles", type=Path, help="ASS subtitle file.")
    burn.add_argument("--output", type=Path, help="Path of the subtitled MP4.")

    text = subparsers.add_parser("text", help="Send a prompt to the configured text generation backend.")
    text.add_argument("prompt", type=str, help="Prompt text.")
    text.add_argument("--provider", type=str, choices=["openai", "deepseek"], default="openai", help="Text backend to use.")
    text.add_argument("--model", type=str, help="Model name (defaults per provider).")
    text.add_argument("--api-base", type=str, help="Custom base URL for the text API (optional).")
    text.add_argument("--api-key-env", type=str, help="Environment variable containing the API key.")
    text.add_argument("--temperature", type=float, default=0.7, help="Sampling temperature.")
    return parser.parse_args()


def build_text_config(args: argparse.Namespace) -> TextClientConfig:
    model = args.model or ("deepseek-chat" if args.provider == "deepseek" else "gpt-4o-mini")
    api_key_env = args.api_key_env or ("OPENAI_API_KEY" if args.provider == "openai" else "DEEPSEEK_API_KEY")
    return TextClientConfig(
        provider=args.provider,
        model=model,
        temperature=args.temperature,
        api_base=args.api_base,
        api_key_env=api_key_env,
    )


def build_config(args: argparse.Namespace) -> PipelineConfig:
    video = VideoConfig()
    if args.command == "assemble":
        video = VideoConfig(
            width=args.width,
            height=args.height,
            frame_rate=args.fps,
            max_parallel_segments=args.parallel,
        )
    subtitles = SubtitleConfig(write_srt=getattr(args, "srt", False))
    return PipelineConfig(
        tools=ToolConfig(ffmpeg_path=args.ffmpeg, ffprobe_path=args.ffprobe, timeout_seconds=args.timeout),
        video=video,
        subtitles=subtitles,
        output_dir=args.workdir,
    )


def _guess_mime(path: Path, default: str) -> str:
    mime_type, _ = mimetypes.guess_type(path.name)
    return mime_type or default


def run(args: argparse.Namespace, agent: VideoAssemblyAgent) -> None:
    if args.command == "assemble":
        images = [
            ImageAsset(data=path.read_bytes(), mime_type=_guess_mime(path, "image/png"), index=idx)
            for idx, path in enumerate(args.image)
        ]
        audio = AudioTrack(data=args.audio.read_bytes(), mime_type=_guess_mime(args.audio, "audio/mpeg"))
        result = agent.assemble(images, audio, target_duration=args.target_duration, output_path=args.output)
        logging.info("Video without subtitles: %s (%.2fs)", result.video_path, result.duration)
        if result.overrun_seconds:
            logging.warning("Slideshow ran %.2fs past the narration and was cut", result.overrun_seconds)
    elif args.command == "subtitles":
        words = json.loads(args.words.read_text(encoding="utf-8"))
        style = SubtitleStyle(
            color=args.color,
            font_size=args.font_size,
            font_family=args.font_family,
            outline_color=args.outline_color,
            outline_width=args.outline_width,
        )
        document = agent.generate_subtitles(
            words,
            args.audio_duration,
            style=style,
            output_path=args.output,
            narration_language=args.narration_language,
            timestamp_language=args.timestamp_language,
        )
        logging.info("Subtitle document: %s (%s lines)", document.path, document.line_count)
        if document.srt_path:
            logging.info("SRT sidecar: %s", document.srt_path)
    else:
        result = agent.burn_subtitles(args.video, args.subtitles, output_path=args.output)
        logging.info("Video with subtitles: %s", result.video_path)


def main() -> None:
    args = parse_args()
    load_dotenv()
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    try:
        if args.command == "text":
            print(build_text_client(build_text_config(args)).generate(args.prompt))
            return
        agent = VideoAssemblyAgent(config=build_config(args))
        run(args, agent)
    except ConfigurationError as exc:
        logging.error("Environment problem: %s", exc)
        sys.exit(2)
    except InputValidationError as exc:
        logging.error("Invalid input: %s", exc)
        sys.exit(3)
    except AssemblyError as exc:
        logging.error("Assembly failed: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
