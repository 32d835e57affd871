"""Health check endpoint."""

import json

from src.services.stage_catalog import STAGE_CATALOG
from src.services.supabase_client import is_configured


def handler(request):
    """
    Report whether the stage store is configured and which workflows are loaded.

    Returns 503 when Supabase credentials are missing, since every stage
    operation would fail.
    """
    configured = is_configured()
    return {
        "statusCode": 200 if configured else 503,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps({
            "status": "ok" if configured else "degraded",
            "service": "estateops-timeline",
            "stage_store_configured": configured,
            "workflows": {category.value: len(templates) for category, templates in STAGE_CATALOG.items()}
        })
    }
