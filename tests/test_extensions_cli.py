# tests/test_extensions_cli.py
from rigdzen_app.models import User


def test_init_db_cli_runs(app):
    runner = app.test_cli_runner()
    res = runner.invoke(args=["init-db"])
    assert res.exit_code == 0
    assert "Tables created" in res.output

def test_ensure_admin_is_idempotent(app, db_session, monkeypatch):
    monkeypatch.setitem(app.config, "ADMIN_EMAIL", "Root@Test.com")
    monkeypatch.setitem(app.config, "ADMIN_NAME", "Root")
    runner = app.test_cli_runner()

    res = runner.invoke(args=["ensure-admin"])
    assert res.exit_code == 0
    assert "root@test.com: created" in res.output

    res = runner.invoke(args=["ensure-admin"])
    assert "unchanged" in res.output

    db_session.expire_all()
    admin = User.query.filter_by(email="root@test.com").one()
    assert admin.role == "ADMIN"

def test_ensure_admin_promotes_existing_user(app, db_session, make, monkeypatch):
    make.user(email="root@test.com", role="PARTICIPANT")
    monkeypatch.setitem(app.config, "ADMIN_EMAIL", "root@test.com")
    res = app.test_cli_runner().invoke(args=["ensure-admin"])
    assert "updated" in res.output
    db_session.expire_all()
    assert User.query.filter_by(email="root@test.com").one().role == "ADMIN"

def test_ensure_admin_without_email_fails(app, monkeypatch):
    monkeypatch.setitem(app.config, "ADMIN_EMAIL", "")
    res = app.test_cli_runner().invoke(args=["ensure-admin"])
    assert res.exit_code != 0

def test_upsert_users_from_csv(app, db_session, make, tmp_path):
    make.user(email="pema@test.com", name="Pema", role="PARTICIPANT")
    make.user(email="same@test.com", name="Same", role="PARTICIPANT")
    csv = tmp_path / "users.csv"
    csv.write_text(
        "Name,Email\n"
        "Pema,PEMA@test.com\n"
        "Jigme,jigme@test.com\n"
        "Same,same@test.com\n"
        ",nobody@test.com\n"
        "Broken,not-an-email\n"
    )

    res = app.test_cli_runner().invoke(args=["upsert-users", str(csv), "--admin", "Pema"])
    assert res.exit_code == 0, res.output
    assert "created=1 updated=1 skipped=1" in res.output

    db_session.expire_all()
    assert User.query.filter_by(email="pema@test.com").one().role == "ADMIN"
    jigme = User.query.filter_by(email="jigme@test.com").one()
    assert (jigme.role, jigme.profile_completed) == ("PARTICIPANT", False)
    assert User.query.filter_by(email="nobody@test.com").count() == 0
