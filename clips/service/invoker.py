"""
Extraction/conversion invoker.

Turns a request (URL, optional format id) into yt-dlp runs and normalizes the
outcome into a ProbeResult / Artifact or one of the service errors.
"""

from clips.service.config import (
    get_allowed_extensions,
    get_default_format,
    get_download_limits,
    get_ffmpeg_path,
    get_merge_format,
    get_output_template,
    get_probe_limits,
    get_ytdlp_path,
    get_ytdlp_proxy,
    validate_format_id,
)
from clips.service.errors import (
    ArtifactNotFound,
    NoFormatsAvailable,
    UpstreamToolError,
    ValidationError,
)
from clips.service.formats import parse_probe_output
from clips.service.store import get_store
from clips.service.tools import run_tool


def _require_url(url):
    if not isinstance(url, str) or not url.strip():
        raise ValidationError('URL is required')
    return url.strip()


def _base_command():
    cmd = [get_ytdlp_path(), '--no-warnings', '--no-playlist']
    proxy = get_ytdlp_proxy()
    if proxy:
        cmd += ['--proxy', proxy]
    return cmd


def build_probe_command(url):
    """
    Build the argv for a metadata-only yt-dlp run.

    The URL follows ``--`` so it can never be parsed as an option.
    """
    return _base_command() + ['--dump-single-json', '--', url]


def select_format_spec(format_id=None, descriptor=None):
    """
    Decide the yt-dlp format spec and whether streams must be merged.

    Args:
        format_id: Format id requested by the client, or None
        descriptor: FormatDescriptor for ``format_id`` when the probe knew it

    Returns:
        tuple[str, bool]: (format spec, merge required)
    """
    if not format_id:
        return get_default_format(), False

    if descriptor is not None and descriptor.is_video_only:
        # Video-only streams get the best audio muxed in; prefer m4a for mp4
        return f'{format_id}+bestaudio[ext=m4a]/{format_id}+bestaudio', True

    return format_id, False


def build_download_command(url, output_dir, format_spec, merge=False):
    """
    Build the argv for a yt-dlp download into ``output_dir``.

    Args:
        url: Source URL (passed verbatim as one argv element)
        output_dir: Directory yt-dlp writes into
        format_spec: Value for ``-f``
        merge: Force a single merged container

    Returns:
        list[str]
    """
    cmd = _base_command() + [
        '-f',
        format_spec,
        '--windows-filenames',
        '--no-mtime',
        '-P',
        str(output_dir),
        '-o',
        get_output_template(),
    ]

    ffmpeg = get_ffmpeg_path()
    if ffmpeg:
        cmd += ['--ffmpeg-location', ffmpeg]

    if merge:
        cmd += ['--merge-output-format', get_merge_format()]

    cmd += ['--', url]
    return cmd


def probe_formats(url, logger=None):
    """
    Ask yt-dlp which formats a URL offers.

    Args:
        url: Source URL
        logger: Optional callable(str) for logging

    Returns:
        ProbeResult with at least one format

    Raises:
        ValidationError: If url is missing
        UpstreamToolError: If yt-dlp fails or prints something unparseable
        NoFormatsAvailable: If nothing downloadable is reported
    """

    def log(message):
        if logger:
            logger(message)

    url = _require_url(url)
    max_output, timeout = get_probe_limits()

    log(f'Probing formats: {url}')
    result = run_tool(build_probe_command(url), max_output=max_output, timeout=timeout)

    if not result.ok:
        log(f'Probe failed: {result.diagnostic()}')
        raise UpstreamToolError('Failed to fetch formats', result.diagnostic())

    try:
        probe = parse_probe_output(result.stdout_text())
    except ValueError as e:
        # json.JSONDecodeError is a ValueError too
        raise UpstreamToolError('Failed to parse yt-dlp output', str(e))

    log(f'Probe found {len(probe.formats)} formats for "{probe.title}"')

    if not probe.formats:
        raise NoFormatsAvailable()

    return probe


def download(url, format_id=None, store=None, logger=None):
    """
    Download media into the artifact store.

    When a format id is given the URL is probed first, so video-only streams
    can be merged with the best audio into one container.

    Args:
        url: Source URL
        format_id: Optional yt-dlp format id (itag)
        store: ArtifactStore (default: built from settings)
        logger: Optional callable(str) for logging

    Returns:
        Artifact

    Raises:
        ValidationError: If url is missing or the format id is unknown
        UpstreamToolError: If yt-dlp fails, overflows or times out
        ArtifactNotFound: If yt-dlp succeeded but no output file was found
    """

    def log(message):
        if logger:
            logger(message)

    url = _require_url(url)
    if format_id is not None and not isinstance(format_id, str):
        format_id = str(format_id)
    format_id = format_id.strip() if format_id else None

    if store is None:
        store = get_store()

    descriptor = None
    if format_id:
        probe = probe_formats(url, logger=logger)
        descriptor = probe.find(format_id)
        if descriptor is None:
            if validate_format_id():
                raise ValidationError(
                    'Invalid itag', f'Format {format_id!r} is not offered for this URL'
                )
            log(f'Format {format_id} not in probe result, passing it through')

    format_spec, merge = select_format_spec(format_id, descriptor)
    output_dir = store.allocate()
    max_output, timeout = get_download_limits()

    log(f'Downloading with yt-dlp: {url}')
    log(f'Format: {format_spec}{" (merged)" if merge else ""}')

    result = run_tool(
        build_download_command(url, output_dir, format_spec, merge=merge),
        max_output=max_output,
        timeout=timeout,
    )

    if not result.ok:
        store.release(output_dir)
        log(f'Download failed: {result.diagnostic()}')
        raise UpstreamToolError('Download failed', result.diagnostic())

    allowed = get_allowed_extensions()
    if merge:
        allowed = [f'.{get_merge_format()}']

    try:
        artifact = store.resolve_latest(allowed, directory=output_dir)
    except ArtifactNotFound:
        store.release(output_dir)
        raise

    log(f'Artifact ready: {artifact.relative_path} ({artifact.file_size} bytes)')
    return artifact

