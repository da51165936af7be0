"""
Django management command to check the external tools.

Usage:
    ./manage.py check_tools
"""

from django.core.management.base import BaseCommand
from yt_dlp.version import __version__ as ytdlp_package_version

from clips.service.config import get_bin_dir, get_download_dir, get_ffmpeg_path, get_ytdlp_path
from clips.service.tools import tool_version


class Command(BaseCommand):
    help = 'Show which yt-dlp and ffmpeg binaries will be used and whether they run'

    def handle(self, *args, **options):
        self.stdout.write('\n=== Configuration ===\n')
        self.stdout.write(f'Download directory: {get_download_dir()}')
        self.stdout.write(f'Vendored bin directory: {get_bin_dir()}')
        self.stdout.write(f'Installed yt-dlp package: {ytdlp_package_version}')

        self.stdout.write('\n=== Tools ===\n')

        ytdlp = get_ytdlp_path()
        ytdlp_version = tool_version(ytdlp)
        if ytdlp_version:
            self.stdout.write(self.style.SUCCESS(f'yt-dlp: {ytdlp} ({ytdlp_version})'))
        else:
            self.stdout.write(self.style.ERROR(f'yt-dlp: {ytdlp} (not runnable)'))

        # Without a configured location yt-dlp looks for ffmpeg on PATH itself
        ffmpeg = get_ffmpeg_path() or 'ffmpeg'
        ffmpeg_version = tool_version(ffmpeg, flag='-version')
        if ffmpeg_version:
            self.stdout.write(self.style.SUCCESS(f'ffmpeg: {ffmpeg} ({ffmpeg_version})'))
        else:
            self.stdout.write(
                self.style.WARNING(
                    f'ffmpeg: {ffmpeg} (not runnable; video-only formats cannot be merged)'
                )
            )

        self.stdout.write('')
