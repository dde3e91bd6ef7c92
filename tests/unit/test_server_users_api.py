"""
Tests for local Linux account management: passwd/group parsing and the
server users API with system commands replaced by a fake.
"""
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

import pytest

from devconsole import server_users

BASE = "/api/admin-users/server"

PASSWD = """root:x:0:0:root:/root:/bin/bash
alice:x:1000:1000:Alice Smith,,,:/home/alice:/bin/bash
nobody:x:65534:65534:nobody:/nonexistent:/usr/sbin/nologin
bob:x:1001:1001::/home/bob:/usr/bin/zsh
"""

GROUPS = """root:x:0:
sudo:x:27:alice
devs:x:1002:alice,bob
"""


class FakeSystem:
    """Stands in for run_subprocess: knows a fixed set of users."""

    def __init__(self, users=("alice", "bob"), fail=None):
        self.users = set(users)
        self.fail = fail
        self.calls = []

    async def __call__(self, cmd, timeout=30, input_text=None, **kwargs):
        self.calls.append((cmd, input_text))
        if cmd[0] == "id":
            return (0, "", "") if cmd[1] in self.users else (1, "", "no such user")
        if cmd[:2] == ["getent", "passwd"]:
            return 0, PASSWD, ""
        if cmd[:2] == ["getent", "group"]:
            return 0, GROUPS, ""
        if cmd[0] == "groups":
            return 0, f"{cmd[1]} : {cmd[1]} devs\n", ""
        if self.fail:
            return 1, "", self.fail
        return 0, "", ""


@pytest.fixture
def system(monkeypatch):
    fake = FakeSystem()
    monkeypatch.setattr(server_users, "run_subprocess", fake)
    return fake


class TestParsing:

    def test_parse_passwd(self):
        users = server_users.parse_passwd(PASSWD)

        assert [u["username"] for u in users] == ["alice", "bob", "nobody", "root"]
        alice = users[0]
        assert alice["full_name"] == "Alice Smith"
        assert alice["is_system"] is False
        assert users[2]["is_system"] is True
        assert users[3]["is_system"] is True

    def test_parse_group_db(self):
        groups = server_users.parse_group_db(GROUPS)
        devs = next(g for g in groups if g["name"] == "devs")
        assert devs["members"] == ["alice", "bob"]
        assert devs["is_system"] is False

    def test_parse_groups_output(self):
        assert server_users.parse_groups_output("alice : alice sudo docker") == ["alice", "sudo", "docker"]
        assert server_users.parse_groups_output("alice sudo") == ["alice", "sudo"]

    def test_parse_shells_skips_comments(self):
        assert server_users.parse_shells("# /etc/shells\n/bin/sh\n\n/bin/bash\n") == ["/bin/sh", "/bin/bash"]

    @pytest.mark.parametrize("name,valid", [
        ("alice", True),
        ("_svc-1", True),
        ("machine$", True),
        ("Alice", False),
        ("1abc", False),
        ("bad name", False),
        ("", False),
    ])
    def test_username_validation(self, name, valid):
        assert server_users.is_valid_username(name) is valid

    def test_missing_shells_file_falls_back(self, tmp_path):
        assert server_users.list_shells(tmp_path / "missing") == server_users.FALLBACK_SHELLS


class TestListing:

    def test_list_users_hides_system_accounts(self, client, system):
        users = client.get(f"{BASE}/users").json()["users"]

        assert [u["username"] for u in users] == ["alice", "bob"]
        assert users[0]["groups"] == ["alice", "devs"]

    def test_list_users_with_system(self, client, system):
        users = client.get(f"{BASE}/users", params={"show_system": True}).json()["users"]
        assert "root" in [u["username"] for u in users]

    def test_list_groups(self, client, system):
        groups = client.get(f"{BASE}/groups").json()["groups"]
        assert [g["name"] for g in groups] == ["devs"]


class TestCreate:

    def test_create_user(self, client, system):
        response = client.post(f"{BASE}/users", json={
            "username": "carol", "full_name": "Carol", "groups": ["devs", "sudo"]
        })

        assert response.status_code == 201
        assert response.json() == {"success": True, "username": "carol"}
        cmd, _ = system.calls[-1]
        assert cmd == ["sudo", "-n", "useradd", "-m", "-c", "Carol", "-s", "/bin/bash", "-G", "devs,sudo", "carol"]

    def test_invalid_username(self, client, system):
        response = client.post(f"{BASE}/users", json={"username": "Bad User"})
        assert response.status_code == 400
        assert system.calls == []

    def test_existing_user(self, client, system):
        response = client.post(f"{BASE}/users", json={"username": "alice"})
        assert response.status_code == 409

    def test_command_failure(self, client, monkeypatch):
        monkeypatch.setattr(server_users, "run_subprocess", FakeSystem(fail="useradd: group 'x' does not exist"))
        response = client.post(f"{BASE}/users", json={"username": "carol", "groups": ["x"]})

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to create user: useradd: group 'x' does not exist"


class TestModify:

    def test_update_runs_one_usermod_per_change(self, client, system):
        response = client.put(f"{BASE}/users/alice", json={"shell": "/usr/bin/zsh", "locked": True})

        assert response.status_code == 200
        usermods = [cmd for cmd, _ in system.calls if "usermod" in cmd]
        assert usermods == [
            ["sudo", "-n", "usermod", "-s", "/usr/bin/zsh", "alice"],
            ["sudo", "-n", "usermod", "-L", "alice"],
        ]

    def test_update_protected_user(self, client, system):
        assert client.put(f"{BASE}/users/root", json={"shell": "/bin/sh"}).status_code == 403

    def test_update_unknown_user(self, client, system):
        assert client.put(f"{BASE}/users/zed", json={"shell": "/bin/sh"}).status_code == 404

    def test_set_password_uses_stdin(self, client, system):
        response = client.post(f"{BASE}/users/alice/set-password", json={"password": "s3cret-pass"})

        assert response.json() == {"success": True}
        cmd, stdin = system.calls[-1]
        assert cmd == ["sudo", "-n", "chpasswd"]
        assert stdin == "alice:s3cret-pass\n"

    def test_short_password(self, client, system):
        response = client.post(f"{BASE}/users/alice/set-password", json={"password": "short"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Password must be at least 8 characters"

    def test_delete_user(self, client, system):
        response = client.delete(f"{BASE}/users/bob", params={"remove_home": True})

        assert response.status_code == 200
        assert system.calls[-1][0] == ["sudo", "-n", "userdel", "-r", "bob"]

    @pytest.mark.parametrize("username", ["root", "nobody"])
    def test_delete_protected_user(self, client, system, username):
        assert client.delete(f"{BASE}/users/{username}").status_code == 403
