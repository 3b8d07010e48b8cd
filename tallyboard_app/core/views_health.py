from django.db import DatabaseError
from django.http import HttpResponse

from core.models import BallotLine


def healthz(request):
    return HttpResponse("ok", content_type="text/plain")


def readyz(request):
    # Touch the ledger table so a database without migrations reports unready.
    try:
        BallotLine.objects.only("id").first()
    except DatabaseError:
        return HttpResponse("db unavailable", status=503, content_type="text/plain")

    return HttpResponse("ok", content_type="text/plain")
