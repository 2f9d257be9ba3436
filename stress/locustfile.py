"""Locust profile for invite redirect traffic.

Campaign and category names are read from the environment so the profile can
target whatever records a staging table holds::

    STRESS_CAMPAIGNS=sale,promo STRESS_CATEGORIES=vip,gold locust -f stress/locustfile.py

A small share of requests hits unknown campaigns to keep the 404 path warm.
"""

import os
import random

from locust import HttpUser, between, task

CAMPAIGNS = [name for name in os.getenv("STRESS_CAMPAIGNS", "sale").split(",") if name]
CATEGORIES = [name for name in os.getenv("STRESS_CATEGORIES", "").split(",") if name]


class InviteRedirectUser(HttpUser):
    """Visitor following invite links without following the redirect."""

    wait_time = between(0.05, 0.3)

    @task(6)
    def campaign(self) -> None:
        campaign = random.choice(CAMPAIGNS)
        self.client.get(f"/{campaign}", name="GET /:campaign", allow_redirects=False)

    @task(3)
    def campaign_with_category(self) -> None:
        if not CATEGORIES:
            return self.campaign()
        campaign = random.choice(CAMPAIGNS)
        category = random.choice(CATEGORIES)
        self.client.get(f"/{campaign}/{category}", name="GET /:campaign/:category", allow_redirects=False)

    @task(1)
    def unknown_campaign(self) -> None:
        with self.client.get(
            f"/missing-{random.randint(1, 1_000_000)}",
            name="GET /:unknown",
            allow_redirects=False,
            catch_response=True,
        ) as response:
            if response.status_code == 404:
                response.success()
            else:
                response.failure(f"expected 404, got {response.status_code}")
