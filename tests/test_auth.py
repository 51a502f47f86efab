"""
Integration tests for authentication routes.

These test the full login/logout flow.
Run: pytest tests/test_auth.py -v
"""
import pytest


@pytest.mark.integration
class TestLogin:
    """Test login functionality"""

    def test_login_success_regular_user(self, client, test_user):
        """
        Test successful login as a regular user.

        Regular users land on the calendar.
        """
        response = client.post('/login', data={
            'username': 'tester',
            'password': 'testpass123'
        })

        assert response.status_code == 302
        assert response.headers['Location'].endswith('/')

    def test_login_success_admin(self, client, test_admin_user):
        """Admins land on the admin panel"""
        response = client.post('/login', data={
            'username': 'admin',
            'password': 'adminpass123'
        })

        assert response.status_code == 302
        assert '/admin' in response.headers['Location']

    def test_login_wrong_password(self, client, test_user):
        """Test that wrong password shows error"""
        response = client.post('/login', data={
            'username': 'tester',
            'password': 'wrongpassword'
        })

        assert response.status_code == 200
        assert b'invalid username or password' in response.data.lower()

    def test_login_nonexistent_user(self, client):
        """Unknown usernames get the same message as a wrong password"""
        response = client.post('/login', data={
            'username': 'nobody',
            'password': 'password123'
        })

        assert response.status_code == 200
        assert b'invalid username or password' in response.data.lower()

    def test_login_missing_fields(self, client):
        """Test that empty credentials are rejected"""
        response = client.post('/login', data={'username': '', 'password': ''})

        assert response.status_code == 200
        assert b'please enter' in response.data.lower()

    def test_login_keeps_username_on_error(self, client, test_user):
        response = client.post('/login', data={
            'username': 'tester',
            'password': 'wrongpassword'
        })
        assert b'value="tester"' in response.data

    def test_logged_in_user_redirected_from_login(self, authenticated_client):
        response = authenticated_client.get('/login')
        assert response.status_code == 302


@pytest.mark.integration
class TestLogout:
    """Test logout functionality"""

    def test_logout_requires_login(self, client):
        """
        Test that logout requires authentication.

        If not logged in, should redirect to login.
        """
        response = client.get('/logout', follow_redirects=True)
        assert response.status_code == 200
        assert '/login' in response.request.path

    def test_logout_success(self, authenticated_client):
        """
        Test successful logout.

        After logout the admin pages need a login again.
        """
        response = authenticated_client.get('/logout', follow_redirects=True)
        assert response.status_code == 200
        assert response.request.path == '/'

        response = authenticated_client.get('/admin')
        assert response.status_code == 302
        assert '/login' in response.headers['Location']
