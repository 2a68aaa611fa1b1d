"""
Test suite for the core module
Tests: login and roles, staff management, audit logs, global search
"""
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient
from pharmacy.core.models import User, AuditLog
from pharmacy.core.test_utils import TestDataFactory, AuthenticatedAPIClient


class LoginTests(TestCase):
    """Test JWT login with role selection"""

    def setUp(self):
        self.client = APIClient()
        self.staff = TestDataFactory.create_user(username='cashier', password='secret123')
        self.admin = TestDataFactory.create_admin(username='owner', password='secret123')

    def test_staff_login_lands_on_pos(self):
        response = self.client.post('/api/v1/auth/login/', {
            'username': 'cashier', 'password': 'secret123'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['user']['role'], 'staff')
        self.assertEqual(response.data['redirect_to'], '/pos')
        self.assertTrue(AuditLog.objects.filter(action='login', object_id=str(self.staff.id)).exists())

    def test_admin_login_lands_on_admin(self):
        response = self.client.post('/api/v1/auth/login/', {
            'username': 'owner', 'password': 'secret123', 'role': 'admin'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['redirect_to'], '/admin')

    def test_role_mismatch_is_rejected(self):
        response = self.client.post('/api/v1/auth/login/', {
            'username': 'cashier', 'password': 'secret123', 'role': 'admin'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_wrong_password_is_rejected(self):
        response = self.client.post('/api/v1/auth/login/', {
            'username': 'cashier', 'password': 'wrong-password'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_disabled_user_cannot_login(self):
        self.staff.is_active = False
        self.staff.save()
        response = self.client.post('/api/v1/auth/login/', {
            'username': 'cashier', 'password': 'secret123'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_refresh_token(self):
        login = self.client.post('/api/v1/auth/login/', {
            'username': 'cashier', 'password': 'secret123'
        }, format='json')
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': login.data['refresh']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)

    def test_unauthenticated_requests_are_rejected(self):
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class CurrentUserTests(TestCase):
    def test_staff_capabilities(self):
        client = AuthenticatedAPIClient().authenticate_user(TestDataFactory.create_user())
        response = client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['is_admin'])
        self.assertFalse(response.data['can_access_reports'])
        self.assertTrue(response.data['can_use_pos'])

    def test_superuser_counts_as_admin(self):
        user = User.objects.create_superuser(username='root', password='secret123', email='root@test.com')
        client = AuthenticatedAPIClient().authenticate_user(user)
        response = client.get('/api/v1/auth/me/')
        self.assertTrue(response.data['is_admin'])
        self.assertTrue(response.data['can_manage_catalog'])


class StaffManagementTests(TestCase):
    """Test the admin-only user endpoints"""

    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_staff_cannot_manage_users(self):
        client = AuthenticatedAPIClient().authenticate_user(TestDataFactory.create_user())
        response = client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_create_staff(self):
        response = self.client.post('/api/v1/users/', {
            'username': 'newstaff',
            'password': 'abc123',
            'password_confirm': 'abc123',
            'full_name': 'New Staff',
            'role': 'staff',
            'phone': '0901 234 567',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        user = User.objects.get(username='newstaff')
        self.assertTrue(user.check_password('abc123'))
        self.assertEqual(user.role, 'staff')

    def test_create_requires_matching_passwords(self):
        response = self.client.post('/api/v1/users/', {
            'username': 'newstaff', 'password': 'abc123', 'password_confirm': 'abc124',
            'full_name': 'New Staff', 'role': 'staff',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('password_confirm', response.data)

    def test_create_rejects_short_password(self):
        response = self.client.post('/api/v1/users/', {
            'username': 'newstaff', 'password': 'abc', 'password_confirm': 'abc',
            'full_name': 'New Staff', 'role': 'staff',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('password', response.data)

    def test_create_rejects_duplicate_username_and_bad_phone(self):
        TestDataFactory.create_user(username='taken')
        response = self.client.post('/api/v1/users/', {
            'username': 'TAKEN', 'password': 'abc123', 'password_confirm': 'abc123',
            'full_name': 'Someone', 'role': 'staff', 'phone': 'call me',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('username', response.data)
        self.assertIn('phone', response.data)

    def test_cannot_delete_own_account(self):
        response = self.client.delete(f'/api/v1/users/{self.admin.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cannot_delete_user_with_invoices(self):
        staff = TestDataFactory.create_user()
        TestDataFactory.create_invoice(user=staff)
        response = self.client.delete(f'/api/v1/users/{staff.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(User.objects.filter(pk=staff.id).exists())

    def test_delete_user(self):
        staff = TestDataFactory.create_user()
        response = self.client.delete(f'/api/v1/users/{staff.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(User.objects.filter(pk=staff.id).exists())

    def test_change_password(self):
        staff = TestDataFactory.create_user()
        response = self.client.post(f'/api/v1/users/{staff.id}/change-password/', {
            'new_password': 'changed1', 'confirm_password': 'changed1'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        staff.refresh_from_db()
        self.assertTrue(staff.check_password('changed1'))

    def test_change_password_mismatch(self):
        staff = TestDataFactory.create_user()
        response = self.client.post(f'/api/v1/users/{staff.id}/change-password/', {
            'new_password': 'changed1', 'confirm_password': 'changed2'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class AuditLogTests(TestCase):
    def test_staff_only_see_their_own_entries(self):
        staff = TestDataFactory.create_user()
        other = TestDataFactory.create_user()
        AuditLog.objects.create(user=staff, action='login', model_name='User', object_id=str(staff.id))
        AuditLog.objects.create(user=other, action='login', model_name='User', object_id=str(other.id))

        client = AuthenticatedAPIClient().authenticate_user(staff)
        response = client.get('/api/v1/audit-logs/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['user']['id'], staff.id)


class GlobalSearchTests(TestCase):
    def setUp(self):
        self.product = TestDataFactory.create_product(name='Paracetamol 500mg', code='PARA500')
        TestDataFactory.create_purchase_order(code='PO-PARA-0001')

    def test_empty_query(self):
        client = AuthenticatedAPIClient().authenticate_user(TestDataFactory.create_user())
        response = client.get('/api/v1/search/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['products'], [])

    def test_staff_search_hides_purchase_orders(self):
        client = AuthenticatedAPIClient().authenticate_user(TestDataFactory.create_user())
        response = client.get('/api/v1/search/?q=para')
        self.assertEqual(len(response.data['products']), 1)
        self.assertEqual(response.data['purchase_orders'], [])

    def test_admin_search_includes_purchase_orders(self):
        client = AuthenticatedAPIClient().authenticate_user(TestDataFactory.create_admin())
        response = client.get('/api/v1/search/?q=para')
        self.assertEqual(len(response.data['purchase_orders']), 1)
