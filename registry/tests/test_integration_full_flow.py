from unittest.mock import patch

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TransactionTestCase, override_settings
from django.urls import reverse

from registry.models import AuditLog

from .helpers import STORE_SETTINGS, FakeStore


@override_settings(**STORE_SETTINGS)
class FullIntegrationFlowTest(TransactionTestCase):

    ADMIN_USER = "admin"
    ADMIN_PASS = "admin"

    def setUp(self):
        self.store = FakeStore()
        patcher = patch("registry.store_client.requests.request", side_effect=self.store)
        patcher.start()
        self.addCleanup(patcher.stop)

        resp = self.client.post(
            reverse("admin_login"),
            {"username": self.ADMIN_USER, "password": self.ADMIN_PASS},
            follow=False,
        )
        self.assertIn(resp.status_code, (302, 303), msg=f"Login failed: {resp.status_code}")

    def _addresses(self):
        return sorted(r["address"] for r in self.store.tables["ip_records"])

    def test_full_flow_users_checks_import_and_cleanup(self):
        # 1) Console: create the checker
        resp = self.client.post(reverse("admin_users"), {"name": "Ali"}, follow=True)
        self.assertEqual(resp.status_code, 200)
        self.assertContains(resp, "User Ali created.")
        ali = self.store.tables["app_users"][0]

        # 2) Check page: fresh address gets registered
        resp = self.client.post(reverse("ip_check"), {"address": "203.0.113.9", "user_id": str(ali["id"])})
        self.assertEqual(resp.status_code, 200)
        self.assertContains(resp, "Fresh IP Address")
        self.assertEqual(self._addresses(), ["203.0.113.9"])
        self.assertEqual(self.store.tables["ip_records"][0]["added_by"], "Ali")

        # 3) Same address again is a duplicate
        resp = self.client.post(reverse("ip_check"), {"address": "203.0.113.9", "user_id": str(ali["id"])})
        self.assertContains(resp, "Duplicate IP Detected")
        self.assertEqual(self._addresses(), ["203.0.113.9"])

        # 4) Access log attributes both checks
        resp = self.client.get(reverse("admin_access_logs"))
        self.assertEqual(resp.status_code, 200)
        entries = list(resp.context["logs"])
        self.assertEqual([e["result"] for e in entries], ["DUPLICATE", "FRESH"])
        self.assertEqual({e["user_name"] for e in entries}, {"Ali"})

        # 5) Bulk import through the dashboard
        upload = SimpleUploadedFile(
            "ips.txt",
            b"203.0.113.9\n198.51.100.1\n\nnot-an-ip\n198.51.100.2\n",
            content_type="text/plain",
        )
        resp = self.client.post(reverse("admin_bulk_import"), {"ip_file": upload}, follow=True)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.context["upload_stats"], {"added": 2, "existing": 1, "errors": 1})
        self.assertEqual(self._addresses(), ["198.51.100.1", "198.51.100.2", "203.0.113.9"])

        # 6) Dashboard lists newest first, export matches
        resp = self.client.get(reverse("admin_dashboard"))
        self.assertContains(resp, "3 Total")
        self.assertEqual(resp.context["ips"][-1]["address"], "203.0.113.9")

        resp = self.client.get(reverse("admin_export_ips_csv"))
        self.assertEqual(resp.status_code, 200)
        self.assertIn("text/csv", resp.get("Content-Type", ""))
        self.assertEqual(len(resp.content.decode("utf-8").splitlines()), 4)

        # 7) Delete a record, then the checker who still has history is protected
        doomed = next(r for r in self.store.tables["ip_records"] if r["address"] == "198.51.100.1")
        resp = self.client.post(reverse("admin_delete_ip", args=[doomed["id"]]), {"address": "198.51.100.1"})
        self.assertEqual(resp.status_code, 302)
        self.assertEqual(self._addresses(), ["198.51.100.2", "203.0.113.9"])

        resp = self.client.post(reverse("admin_delete_ip", args=[doomed["id"]]), {"address": "198.51.100.1"}, follow=True)
        self.assertContains(resp, "IP record not found.")
        self.assertEqual(AuditLog.objects.filter(action="ADMIN_DELETE_IP").count(), 1)

        resp = self.client.post(reverse("admin_delete_user", args=[ali["id"]]), {"name": "Ali"}, follow=True)
        self.assertContains(resp, "cannot be deleted")
        self.assertEqual(len(self.store.tables["app_users"]), 1)

        actions = set(AuditLog.objects.values_list("action", flat=True))
        self.assertTrue({"ADMIN_LOGIN", "ADMIN_CREATE_USER", "ADMIN_BULK_IMPORT", "ADMIN_DELETE_IP"} <= actions)

        # 8) Logout is a POST from the console nav
        resp = self.client.post(reverse("admin_logout"))
        self.assertRedirects(resp, reverse("admin_login"), fetch_redirect_response=False)
        resp = self.client.get(reverse("admin_dashboard"))
        self.assertRedirects(resp, reverse("admin_login"), fetch_redirect_response=False)
