import json
import logging

from django.http import FileResponse, HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from clips.service.config import get_expiry_minutes, get_expiry_seconds
from clips.service.errors import ClipdropError, ValidationError
from clips.service.invoker import download, probe_formats
from clips.service.store import get_store

logger = logging.getLogger(__name__)


def _error_response(error):
    return JsonResponse(error.as_dict(), status=error.status)


def _internal_error(e):
    logger.exception('Unhandled error while serving request')
    return JsonResponse({'error': 'Internal server error', 'details': str(e)}, status=500)


def _read_body(request):
    """
    Return the request body as a dict.

    JSON is expected; form-encoded bodies are accepted as well.
    """
    content_type = request.content_type or ''
    if content_type in ('application/x-www-form-urlencoded', 'multipart/form-data'):
        return request.POST.dict()

    if not request.body:
        return {}

    try:
        data = json.loads(request.body)
    except (ValueError, UnicodeDecodeError):
        raise ValidationError('Invalid JSON body')

    if not isinstance(data, dict):
        raise ValidationError('Invalid JSON body')
    return data


def health_view(request):
    """Liveness check"""
    return HttpResponse('Video Downloader API is running', content_type='text/plain')


@csrf_exempt
@require_http_methods(['POST'])
def check_view(request):
    """
    List the formats a URL offers.

    Body:
        url (required): Media page URL

    Returns:
        JSON with the full format list and the same formats split into
        videoOnly, audioOnly and combined.
    """
    try:
        data = _read_body(request)
        probe = probe_formats(data.get('url'), logger=logger.info)
    except ClipdropError as e:
        return _error_response(e)
    except Exception as e:
        return _internal_error(e)

    return JsonResponse(probe.as_dict())


@csrf_exempt
@require_http_methods(['POST'])
def download_view(request):
    """
    Download a URL into the artifact store and return a time-limited link.

    Body:
        url (required): Media page URL
        itag (optional): Format id from /check; omitted means best combined stream

    Returns:
        JSON with download_url and expires_in_minutes
    """
    store = get_store()
    try:
        data = _read_body(request)
        artifact = download(data.get('url'), data.get('itag'), store=store, logger=logger.info)
    except ClipdropError as e:
        return _error_response(e)
    except Exception as e:
        return _internal_error(e)

    # Expiry is armed now, whether or not the client ever fetches the file
    store.schedule_expiry(artifact, get_expiry_seconds())
    handle = store.mint_handle(artifact)

    return JsonResponse(
        {
            'download_url': f'/file/{handle}',
            'expires_in_minutes': get_expiry_minutes(),
        }
    )


@require_http_methods(['GET', 'HEAD'])
def file_view(request, handle):
    """Stream an artifact as an attachment until it expires."""
    # Already decoded by the URL resolver; see ArtifactStore.fetch
    try:
        artifact = get_store().open_relative(handle)
        stream = open(artifact.path, 'rb')
    except ClipdropError as e:
        return _error_response(e)
    except FileNotFoundError:
        # Expired between lookup and open
        return JsonResponse({'error': 'File expired or not found'}, status=404)

    return FileResponse(stream, as_attachment=True, filename=artifact.name)
