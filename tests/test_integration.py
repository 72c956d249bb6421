import os

import pytest
from dotenv import load_dotenv

from normalizer import ModelNormalizer
from teams_client import TeamsClient

load_dotenv()

TEAMS_API_TOKEN = os.getenv("TEAMS_API_TOKEN")
TEAMS_API_URL = os.getenv("TEAMS_API_URL")
GRAPH_API_TOKEN = os.getenv("GRAPH_API_TOKEN")


@pytest.fixture
def tenant_client():
    if not TEAMS_API_TOKEN:
        pytest.skip("Skipping: TEAMS_API_TOKEN not set")
    if not TEAMS_API_URL:
        pytest.skip("Skipping: TEAMS_API_URL not set")
    return TeamsClient(TEAMS_API_TOKEN, [TEAMS_API_URL], graph_token=GRAPH_API_TOKEN)


@pytest.mark.asyncio
async def test_tenant_connectivity(tenant_client):
    assert tenant_client.candidate_urls[0] == TEAMS_API_URL.rstrip("/")

    accounts = await tenant_client.get_resource_accounts()
    assert isinstance(accounts, list)
    print(f"Tenant: fetched {len(accounts)} resource accounts")


@pytest.mark.asyncio
async def test_list_voice_apps(tenant_client):
    normalizer = ModelNormalizer(tenant_client)
    await normalizer.prefetch()

    apps = normalizer.voice_apps()
    assert apps == sorted(apps, key=lambda a: (a.name.lower(), a.id))
    if apps:
        print(f"First voice app: {apps[0].kind_label} {apps[0].name}")
