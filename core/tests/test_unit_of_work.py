from django.test import TestCase

from core.tenants.models import Tenant
from core.unit_of_work import unit_of_work

from .helpers import make_tenant


class UnitOfWorkTests(TestCase):
    def setUp(self):
        self.tenant = make_tenant(subdomain="uow", is_active=False)

    def test_commits_when_work_returns(self):
        result = unit_of_work(
            lambda repos: repos.compare_and_set(Tenant, self.tenant.pk, "is_active", False, is_active=True)
        )
        self.assertTrue(result)
        self.tenant.refresh_from_db()
        self.assertTrue(self.tenant.is_active)

    def test_rolls_back_on_exception(self):
        def work(repos):
            repos.query(Tenant).filter(pk=self.tenant.pk).update(name="Changed")
            raise RuntimeError("boom")

        with self.assertRaises(RuntimeError):
            unit_of_work(work)

        self.tenant.refresh_from_db()
        self.assertEqual(self.tenant.name, "Uow")

    def test_compare_and_set_only_applies_on_expected_value(self):
        applied = unit_of_work(
            lambda repos: repos.compare_and_set(Tenant, self.tenant.pk, "is_active", True, name="Nope")
        )
        self.assertFalse(applied)
        self.tenant.refresh_from_db()
        self.assertEqual(self.tenant.name, "Uow")

    def test_on_commit_runs_after_commit(self):
        calls = []
        with self.captureOnCommitCallbacks(execute=True):
            unit_of_work(lambda repos: repos.on_commit(lambda: calls.append("sent")))
        self.assertEqual(calls, ["sent"])
