"""
Typed view of yt-dlp's metadata JSON.

yt-dlp's info dict is treated as untrusted: every field may be missing or of
the wrong type, and fallbacks are declared as data in constants.py.
"""

import json
from dataclasses import dataclass, field
from typing import List, Optional

from clips.service.constants import (
    FORMAT_KIND_AUDIO_ONLY,
    FORMAT_KIND_COMBINED,
    FORMAT_KIND_VIDEO_ONLY,
    FORMAT_SIZE_FIELDS,
    NO_CODEC,
)


@dataclass
class FormatDescriptor:
    """One downloadable stream reported by the extraction tool"""

    format_id: str
    label: str
    ext: Optional[str] = None
    filesize: Optional[int] = None
    has_video: bool = False
    has_audio: bool = False

    @property
    def kind(self):
        if self.has_video and self.has_audio:
            return FORMAT_KIND_COMBINED
        if self.has_video:
            return FORMAT_KIND_VIDEO_ONLY
        return FORMAT_KIND_AUDIO_ONLY

    @property
    def is_video_only(self):
        return self.kind == FORMAT_KIND_VIDEO_ONLY

    @property
    def quality(self):
        """Label with a human-readable size, e.g. '137 - 1920x1080 (1080p) (41.3MB)'"""
        if self.filesize:
            size = f'{self.filesize / 1024 / 1024:.1f}MB'
        else:
            size = 'N/A'
        return f'{self.label} ({size})'

    def as_dict(self):
        return {
            'itag': self.format_id,
            'quality': self.quality,
            'filesize': self.filesize,
            'ext': self.ext,
        }


@dataclass
class ProbeResult:
    """Metadata returned by a probe"""

    title: Optional[str] = None
    webpage_url: Optional[str] = None
    formats: List[FormatDescriptor] = field(default_factory=list)

    def find(self, format_id):
        """Return the descriptor with ``format_id`` or None"""
        for descriptor in self.formats:
            if descriptor.format_id == format_id:
                return descriptor
        return None

    def by_kind(self, kind):
        return [f for f in self.formats if f.kind == kind]

    def as_dict(self):
        return {
            'formats': [f.as_dict() for f in self.formats],
            'videoOnly': [f.as_dict() for f in self.by_kind(FORMAT_KIND_VIDEO_ONLY)],
            'audioOnly': [f.as_dict() for f in self.by_kind(FORMAT_KIND_AUDIO_ONLY)],
            'combined': [f.as_dict() for f in self.by_kind(FORMAT_KIND_COMBINED)],
        }


def _text(value):
    if value is None:
        return None
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        text = str(value).strip()
        return text or None
    return None


def _size(raw):
    """First usable size field, exact size preferred over the estimate"""
    for key in FORMAT_SIZE_FIELDS:
        value = raw.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)) and value > 0:
            return int(value)
    return None


def _has_stream(codec):
    """A codec field that is absent, empty or 'none' means the stream is absent"""
    codec = _text(codec)
    return codec is not None and codec.lower() != NO_CODEC


def parse_format(raw):
    """
    Build a FormatDescriptor from one entry of ``info['formats']``.

    Returns:
        FormatDescriptor | None: None for entries without an id or without
        any audio/video stream (storyboards and the like).
    """
    if not isinstance(raw, dict):
        return None

    format_id = _text(raw.get('format_id'))
    if not format_id:
        return None

    has_video = _has_stream(raw.get('vcodec'))
    has_audio = _has_stream(raw.get('acodec'))
    if not has_video and not has_audio:
        return None

    label = _text(raw.get('format')) or _text(raw.get('format_note')) or format_id

    return FormatDescriptor(
        format_id=format_id,
        label=label,
        ext=_text(raw.get('ext')),
        filesize=_size(raw),
        has_video=has_video,
        has_audio=has_audio,
    )


def parse_probe_output(text):
    """
    Parse the single JSON document yt-dlp prints for --dump-single-json.

    Args:
        text: Raw stdout of the probe

    Returns:
        ProbeResult

    Raises:
        ValueError: If stdout is not a JSON object
    """
    info = json.loads(text.strip())
    if not isinstance(info, dict):
        raise ValueError('Expected a JSON object from yt-dlp')

    raw_formats = info.get('formats')
    if not isinstance(raw_formats, list):
        # Single-format extractors describe the stream on the top-level dict
        raw_formats = [info] if info.get('format_id') else []

    formats = []
    for raw in raw_formats:
        descriptor = parse_format(raw)
        if descriptor is not None:
            formats.append(descriptor)

    return ProbeResult(
        title=_text(info.get('title')),
        webpage_url=_text(info.get('webpage_url')),
        formats=formats,
    )
