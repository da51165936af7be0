"""
Media format constants.

Centralized definitions of file extensions and stream classification.
"""

# Extensions an artifact may carry once yt-dlp has finished
ARTIFACT_EXTENSIONS = [
    '.mp4',
    '.webm',
    '.mkv',
    '.mov',
    '.m4a',
    '.mp3',
    '.ogg',
    '.opus',
    '.wav',
    '.flac',
]

# yt-dlp reports a missing stream with this codec value
NO_CODEC = 'none'

# Size fields in order of preference: exact first, then the estimate
FORMAT_SIZE_FIELDS = ('filesize', 'filesize_approx')

FORMAT_KIND_VIDEO_ONLY = 'video_only'
FORMAT_KIND_AUDIO_ONLY = 'audio_only'
FORMAT_KIND_COMBINED = 'combined'
