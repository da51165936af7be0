"""
Tests for service/invoker.py
"""

import json
import tempfile
from pathlib import Path
from unittest.mock import patch

from django.test import SimpleTestCase, override_settings

from clips.service.errors import (
    ArtifactNotFound,
    NoFormatsAvailable,
    UpstreamToolError,
    ValidationError,
)
from clips.service.expiry import ExpirySchedule
from clips.service.invoker import (
    build_download_command,
    build_probe_command,
    download,
    probe_formats,
    select_format_spec,
)
from clips.service.formats import FormatDescriptor
from clips.service.store import ArtifactStore
from clips.service.tools import ToolResult

PROBE_JSON = json.dumps(
    {
        'title': 'Test Video',
        'formats': [
            {'format_id': '140', 'ext': 'm4a', 'vcodec': 'none', 'acodec': 'mp4a.40.2'},
            {'format_id': '137', 'ext': 'mp4', 'vcodec': 'avc1', 'acodec': 'none'},
            {'format_id': '18', 'ext': 'mp4', 'vcodec': 'avc1', 'acodec': 'mp4a'},
        ],
    }
).encode()


def _ok(argv, stdout=b''):
    return ToolResult(argv=argv, returncode=0, stdout=stdout)


def _argv_value(argv, flag):
    return argv[argv.index(flag) + 1]


def fake_tool(files=('Test Video.mp4',), probe=PROBE_JSON, fail_download=False):
    """
    Build a run_tool replacement that answers probes with ``probe`` and
    "downloads" by creating ``files`` in the -P directory.
    """
    calls = []

    def run(argv, max_output, timeout=None, cwd=None):
        calls.append(argv)
        if '--dump-single-json' in argv:
            return _ok(argv, probe)
        if fail_download:
            return ToolResult(argv=argv, returncode=1, stderr=b'ERROR: Video unavailable')
        out_dir = Path(_argv_value(argv, '-P'))
        for name in files:
            (out_dir / name).write_bytes(b'media')
        return _ok(argv)

    run.calls = calls
    return run


@override_settings(
    CLIPDROP_YTDLP='/opt/bin/yt-dlp',
    CLIPDROP_FFMPEG='',
    CLIPDROP_YTDLP_PROXY='',
    CLIPDROP_VALIDATE_FORMAT_ID=True,
)
class CommandBuildingTest(SimpleTestCase):
    """Tests for argv construction"""

    def test_probe_command(self):
        argv = build_probe_command('https://example.com/watch?v=abc')
        self.assertEqual(argv[0], '/opt/bin/yt-dlp')
        self.assertIn('--dump-single-json', argv)
        self.assertEqual(argv[-2:], ['--', 'https://example.com/watch?v=abc'])

    def test_hostile_url_is_one_argument(self):
        url = 'https://x.test/"; rm -rf ~ #'
        argv = build_download_command(url, '/tmp/out', '18')
        self.assertEqual(argv[-1], url)
        self.assertEqual(argv[-2], '--')

    def test_url_that_looks_like_an_option_follows_separator(self):
        argv = build_probe_command('--exec=touch /tmp/pwned')
        self.assertEqual(argv[-2:], ['--', '--exec=touch /tmp/pwned'])

    def test_download_command_options(self):
        argv = build_download_command('https://example.com/v', '/tmp/out', '18')
        self.assertEqual(_argv_value(argv, '-f'), '18')
        self.assertEqual(_argv_value(argv, '-P'), '/tmp/out')
        self.assertEqual(_argv_value(argv, '-o'), '%(title).100B.%(ext)s')
        self.assertIn('--windows-filenames', argv)
        self.assertIn('--no-playlist', argv)
        self.assertNotIn('--merge-output-format', argv)
        self.assertNotIn('--ffmpeg-location', argv)

    @override_settings(CLIPDROP_FFMPEG='/opt/bin/ffmpeg', CLIPDROP_YTDLP_PROXY='socks5://p:1080')
    def test_ffmpeg_location_and_proxy(self):
        argv = build_download_command('https://example.com/v', '/tmp/out', '18', merge=True)
        self.assertEqual(_argv_value(argv, '--ffmpeg-location'), '/opt/bin/ffmpeg')
        self.assertEqual(_argv_value(argv, '--proxy'), 'socks5://p:1080')
        self.assertEqual(_argv_value(argv, '--merge-output-format'), 'mp4')

    @override_settings(CLIPDROP_TITLE_MAX_BYTES=40)
    def test_title_truncation_configurable(self):
        argv = build_download_command('https://example.com/v', '/tmp/out', '18')
        self.assertEqual(_argv_value(argv, '-o'), '%(title).40B.%(ext)s')


@override_settings(CLIPDROP_DEFAULT_FORMAT='best[ext=mp4]/best')
class SelectFormatSpecTest(SimpleTestCase):
    def test_default_is_best_combined(self):
        self.assertEqual(select_format_spec(None), ('best[ext=mp4]/best', False))

    def test_video_only_requests_best_audio_and_merge(self):
        descriptor = FormatDescriptor(format_id='137', label='137', has_video=True)
        spec, merge = select_format_spec('137', descriptor)
        self.assertTrue(merge)
        self.assertTrue(spec.startswith('137+bestaudio'))

    def test_combined_format_used_as_is(self):
        descriptor = FormatDescriptor(format_id='18', label='18', has_video=True, has_audio=True)
        self.assertEqual(select_format_spec('18', descriptor), ('18', False))

    def test_unknown_format_passed_through(self):
        self.assertEqual(select_format_spec('999', None), ('999', False))


class ProbeFormatsTest(SimpleTestCase):
    """Tests for probe_formats"""

    @patch('clips.service.invoker.run_tool')
    def test_missing_url_runs_nothing(self, mock_run):
        for url in (None, '', '   ', 42):
            with self.assertRaises(ValidationError):
                probe_formats(url)
        mock_run.assert_not_called()

    @patch('clips.service.invoker.run_tool')
    def test_success(self, mock_run):
        mock_run.side_effect = fake_tool()
        probe = probe_formats('https://example.com/watch?v=abc')
        self.assertEqual([f.format_id for f in probe.formats], ['140', '137', '18'])

    @patch('clips.service.invoker.run_tool')
    def test_uses_probe_limits(self, mock_run):
        mock_run.side_effect = fake_tool()
        with self.settings(CLIPDROP_PROBE_MAX_OUTPUT=1234, CLIPDROP_PROBE_TIMEOUT=7):
            probe_formats('https://example.com/v')
        self.assertEqual(mock_run.call_args.kwargs['max_output'], 1234)
        self.assertEqual(mock_run.call_args.kwargs['timeout'], 7)

    @patch('clips.service.invoker.run_tool')
    def test_tool_failure(self, mock_run):
        mock_run.return_value = ToolResult(
            argv=['yt-dlp'], returncode=1, stderr=b'ERROR: Unsupported URL'
        )
        with self.assertRaises(UpstreamToolError) as ctx:
            probe_formats('https://example.com/nothing')
        self.assertEqual(ctx.exception.message, 'Failed to fetch formats')
        self.assertEqual(ctx.exception.details, 'ERROR: Unsupported URL')

    @patch('clips.service.invoker.run_tool')
    def test_overflow_is_failure(self, mock_run):
        mock_run.return_value = ToolResult(argv=['yt-dlp'], returncode=-9, overflowed=True)
        with self.assertRaises(UpstreamToolError):
            probe_formats('https://example.com/huge')

    @patch('clips.service.invoker.run_tool')
    def test_unparseable_output(self, mock_run):
        mock_run.return_value = _ok(['yt-dlp'], b'this is not json')
        with self.assertRaises(UpstreamToolError) as ctx:
            probe_formats('https://example.com/v')
        self.assertEqual(ctx.exception.message, 'Failed to parse yt-dlp output')

    @patch('clips.service.invoker.run_tool')
    def test_no_formats(self, mock_run):
        mock_run.return_value = _ok(
            ['yt-dlp'],
            json.dumps({'title': 'x', 'formats': [{'format_id': 'sb0', 'vcodec': 'none',
                                                   'acodec': 'none'}]}).encode(),
        )
        with self.assertRaises(NoFormatsAvailable):
            probe_formats('https://example.com/v')


class DownloadTest(SimpleTestCase):
    """Tests for download"""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)
        self.store = ArtifactStore(self.root, isolate=True, schedule=ExpirySchedule())

    @patch('clips.service.invoker.run_tool')
    def test_missing_url_runs_nothing(self, mock_run):
        with self.assertRaises(ValidationError):
            download('', store=self.store)
        mock_run.assert_not_called()

    @patch('clips.service.invoker.run_tool')
    def test_default_format_skips_probe(self, mock_run):
        tool = fake_tool()
        mock_run.side_effect = tool

        artifact = download('https://example.com/v', store=self.store)

        self.assertEqual(len(tool.calls), 1)
        self.assertNotIn('--dump-single-json', tool.calls[0])
        self.assertEqual(artifact.name, 'Test Video.mp4')
        self.assertEqual(artifact.path.parent.parent, self.root)

    @patch('clips.service.invoker.run_tool')
    def test_video_only_format_is_merged(self, mock_run):
        tool = fake_tool(files=['Test Video.mp4'])
        mock_run.side_effect = tool

        artifact = download('https://example.com/v', '137', store=self.store)

        probe_call, download_call = tool.calls
        self.assertIn('--dump-single-json', probe_call)
        self.assertIn('137+bestaudio', _argv_value(download_call, '-f'))
        self.assertEqual(_argv_value(download_call, '--merge-output-format'), 'mp4')
        self.assertEqual(artifact.extension, '.mp4')
        # Exactly one file for the request
        self.assertEqual([p.name for p in artifact.path.parent.iterdir()], ['Test Video.mp4'])

    @patch('clips.service.invoker.run_tool')
    def test_merged_lookup_ignores_leftover_streams(self, mock_run):
        """Only the merged container counts as the artifact"""
        mock_run.side_effect = fake_tool(files=['Test Video.f140.m4a'])

        with self.assertRaises(ArtifactNotFound):
            download('https://example.com/v', '137', store=self.store)

    @patch('clips.service.invoker.run_tool')
    def test_combined_format_not_merged(self, mock_run):
        tool = fake_tool()
        mock_run.side_effect = tool

        download('https://example.com/v', '18', store=self.store)

        download_call = tool.calls[1]
        self.assertEqual(_argv_value(download_call, '-f'), '18')
        self.assertNotIn('--merge-output-format', download_call)

    @patch('clips.service.invoker.run_tool')
    def test_numeric_itag_accepted(self, mock_run):
        mock_run.side_effect = fake_tool()
        artifact = download('https://example.com/v', 18, store=self.store)
        self.assertEqual(artifact.extension, '.mp4')

    @override_settings(CLIPDROP_VALIDATE_FORMAT_ID=True)
    @patch('clips.service.invoker.run_tool')
    def test_unknown_itag_rejected(self, mock_run):
        tool = fake_tool()
        mock_run.side_effect = tool

        with self.assertRaises(ValidationError) as ctx:
            download('https://example.com/v', '999', store=self.store)

        self.assertEqual(ctx.exception.message, 'Invalid itag')
        self.assertEqual(len(tool.calls), 1)
        self.assertEqual(list(self.root.iterdir()), [])

    @override_settings(CLIPDROP_VALIDATE_FORMAT_ID=False)
    @patch('clips.service.invoker.run_tool')
    def test_unknown_itag_passed_through_when_validation_off(self, mock_run):
        tool = fake_tool()
        mock_run.side_effect = tool

        download('https://example.com/v', '999', store=self.store)

        self.assertEqual(_argv_value(tool.calls[1], '-f'), '999')

    @patch('clips.service.invoker.run_tool')
    def test_tool_failure_releases_directory(self, mock_run):
        mock_run.side_effect = fake_tool(fail_download=True)

        with self.assertRaises(UpstreamToolError) as ctx:
            download('https://example.com/v', store=self.store)

        self.assertEqual(ctx.exception.message, 'Download failed')
        self.assertIn('Video unavailable', ctx.exception.details)
        self.assertEqual(list(self.root.iterdir()), [])

    @patch('clips.service.invoker.run_tool')
    def test_no_output_file(self, mock_run):
        mock_run.side_effect = fake_tool(files=['Test Video.info.json'])

        with self.assertRaises(ArtifactNotFound):
            download('https://example.com/v', store=self.store)

        self.assertEqual(list(self.root.iterdir()), [])

    @patch('clips.service.invoker.run_tool')
    def test_logger_receives_progress(self, mock_run):
        mock_run.side_effect = fake_tool()
        logs = []

        download('https://example.com/v', store=self.store, logger=logs.append)

        self.assertTrue(any('Downloading with yt-dlp' in line for line in logs))
        self.assertTrue(any('Artifact ready' in line for line in logs))
