import json
import uuid

from django.core.cache import cache
from django.test import Client, TestCase

from core.jwt_auth import create_jwt_token

from .factories import create_default_plans, create_plan, create_subscription, create_user


class SubscriptionAPITestCase(TestCase):
    def setUp(self):
        cache.clear()
        self.client = Client()
        self.plans = create_default_plans()
        self.user = create_user()

    def auth(self, user=None):
        return {"HTTP_AUTHORIZATION": f"Bearer {create_jwt_token(user or self.user)}"}

    def post_json(self, path, data, user=None):
        return self.client.post(path, data=json.dumps(data), content_type="application/json", **self.auth(user))

    def test_list_plans_is_public(self):
        create_plan("Retired", sort_order=8, is_active=False)

        resp = self.client.get("/api/billing/plans")

        self.assertEqual(resp.status_code, 200)
        self.assertEqual([plan["name"] for plan in resp.json()], ["Free", "Pro", "Premium"])

    def test_get_plan(self):
        plan = self.plans["Pro"]

        resp = self.client.get(f"/api/billing/plans/{plan.id}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["features"]["max_video_generations"], 10)

        resp = self.client.get(f"/api/billing/plans/{uuid.uuid4()}")
        self.assertEqual(resp.status_code, 404)

    def test_subscribe_then_conflict(self):
        payload = {"plan_id": str(self.plans["Pro"].id), "billing_cycle": "monthly"}

        resp = self.post_json("/api/billing/subscription", payload)
        self.assertEqual(resp.status_code, 201)
        data = resp.json()
        self.assertEqual(data["status"], "ACTIVE")
        self.assertEqual(data["billing_cycle"], "MONTHLY")
        self.assertEqual(data["usage_quota"]["recipe_generation"], 50)

        resp = self.post_json("/api/billing/subscription", payload)
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["detail"], "User already has an active subscription")

    def test_get_subscription_without_one_is_404(self):
        resp = self.client.get("/api/billing/subscription", **self.auth())
        self.assertEqual(resp.status_code, 404)

    def test_update_and_cancel_subscription(self):
        create_subscription(self.user, self.plans["Pro"])

        resp = self.client.put(
            "/api/billing/subscription",
            data=json.dumps({"auto_renew": False}),
            content_type="application/json",
            **self.auth(),
        )
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(resp.json()["auto_renew"])

        resp = self.client.delete("/api/billing/subscription", **self.auth())
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], "CANCELED")

    def test_usage_check_for_free_user(self):
        resp = self.client.get("/api/billing/usage/check/recipe_generation", **self.auth())

        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertFalse(data["can_use"])
        self.assertEqual(data["total"], 5)
        self.assertEqual(data["suggested_plan"], "Pro")

    def test_invalid_feature_is_400(self):
        resp = self.client.get("/api/billing/usage/check/image_generation", **self.auth())

        self.assertEqual(resp.status_code, 400)
        self.assertIn("Invalid feature type", resp.json()["detail"])

    def test_decrement_for_free_user_returns_paywall_error(self):
        resp = self.post_json("/api/billing/usage/decrement", {"feature": "video_generation"})

        self.assertEqual(resp.status_code, 403)
        data = resp.json()
        self.assertTrue(data["is_paywall_error"])
        self.assertEqual(data["suggested_plan"], "Pro")
        self.assertEqual(data["feature_type"], "video_generation")

    def test_decrement_for_subscriber(self):
        create_subscription(self.user, self.plans["Pro"])

        resp = self.post_json("/api/billing/usage/decrement", {"feature": "video_generation", "amount": 2})

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["remaining"], 8)

    def test_summary_status_and_capability(self):
        create_subscription(self.user, self.plans["Pro"])

        resp = self.client.get("/api/billing/usage/summary", **self.auth())
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.json()["features"]), 4)

        resp = self.client.get("/api/billing/status", **self.auth())
        self.assertTrue(resp.json()["can_generate_video"])

        resp = self.client.get("/api/billing/features/priority_support/access", **self.auth())
        self.assertEqual(resp.json(), {"capability": "priority_support", "has_access": False})

    def test_admin_endpoints_require_staff(self):
        resp = self.client.get("/api/billing/admin/stats/subscriptions", **self.auth())
        self.assertEqual(resp.status_code, 403)

        admin = create_user("admin", is_staff=True)
        create_subscription(self.user, self.plans["Pro"])

        resp = self.client.get("/api/billing/admin/stats/subscriptions", **self.auth(admin))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["active_subscriptions"], 1)

        resp = self.client.post("/api/billing/admin/usage/reset-quotas", **self.auth(admin))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"reset_count": 1})

    def test_protected_endpoints_require_token(self):
        self.assertEqual(self.client.get("/api/billing/subscription").status_code, 401)
        self.assertEqual(
            self.client.get(
                "/api/billing/status", HTTP_AUTHORIZATION="Bearer not-a-token"
            ).status_code,
            401,
        )
