"""
Tests for the command line interface.
"""

import json

import pytest

from careerfit import __version__
from careerfit.app import main
from careerfit.selector import start_session


@pytest.fixture(autouse=True)
def no_dotenv(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)


def run(db, *args):
    main(["--db", str(db), *args])


def issued_token(output):
    [line] = [l for l in output.splitlines() if l.startswith("Token: ")]
    return line.split(": ")[1]


def json_output(output):
    return json.loads(output[output.index("{\n"):])


class TestCli:
    def test_version(self, capsys):
        main(["--version"])
        assert capsys.readouterr().out.strip() == __version__

    def test_no_command_prints_help(self, capsys):
        main([])
        assert "usage: careerfit" in capsys.readouterr().out

    def test_init_db(self, tmp_path, capsys):
        db = tmp_path / "data" / "cli.db"
        run(db, "init-db")
        assert db.exists()
        assert "Database ready" in capsys.readouterr().out

    def test_token_lifecycle(self, db_path, capsys):
        run(db_path, "issue-token", "--email", "admin@lincoln.edu", "--type", "ENTERPRISE",
            "--institution", "Lincoln High", "--max-usage", "5")
        out = capsys.readouterr().out
        token = issued_token(out)
        assert token.startswith("LINCO-")

        run(db_path, "validate-token", "--token", token)
        assert "remaining uses: 5" in capsys.readouterr().out

        run(db_path, "token-status", "--token", token)
        assert json_output(capsys.readouterr().out)["status"] == "ACTIVE"

        run(db_path, "revoke-token", "--token", token)
        capsys.readouterr()

        with pytest.raises(SystemExit) as exc:
            run(db_path, "validate-token", "--token", token)
        assert exc.value.code == 2
        assert "revoked is not active" in capsys.readouterr().out

    def test_issue_token_validation_errors(self, db_path, capsys):
        with pytest.raises(SystemExit) as exc:
            run(db_path, "issue-token", "--email", "a@b.com", "--type", "ENTERPRISE")
        assert exc.value.code == 2
        assert "Invalid token request" in capsys.readouterr().out

    def test_submit_and_unlock(self, seeded_db, valid_responses, tmp_path, capsys):
        session = start_session(seeded_db)["sessionToken"]
        answers = tmp_path / "answers.json"
        answers.write_text(json.dumps({"responses": valid_responses}), encoding="utf-8")

        run(seeded_db, "submit", "--session", session, "--input", str(answers))
        out = capsys.readouterr().out
        assert "Career code: RIA" in out
        assert "Total score: 180 (Innovator)" in out

        run(seeded_db, "issue-token", "--email", "ada@example.com", "--type", "INDIVIDUAL")
        token = issued_token(capsys.readouterr().out)

        run(seeded_db, "unlock", "--token", token, "--session", session,
            "--first-name", "Ada", "--last-name", "Obi", "--class", "SS2")
        assert "Unlocked: RIA (Innovator)" in capsys.readouterr().out

        run(seeded_db, "unlock", "--token", token, "--session", session,
            "--first-name", "Ada", "--last-name", "Obi", "--class", "SS2")
        assert "Views: 2" in capsys.readouterr().out

        run(seeded_db, "token-report", "--token", token)
        report = json_output(capsys.readouterr().out)
        assert report["byClass"] == {"SS2": 1}

    def test_domain_errors_exit_with_message(self, db_path):
        with pytest.raises(SystemExit) as exc:
            run(db_path, "result", "--session", "missing")
        assert str(exc.value.code) == "Result not found"

    def test_missing_input_file(self, db_path, tmp_path):
        with pytest.raises(SystemExit) as exc:
            run(db_path, "submit", "--session", "x", "--input", str(tmp_path / "nope.json"))
        assert "Input file not found" in str(exc.value.code)

    def test_stats_and_cleanup(self, seeded_db, capsys):
        run(seeded_db, "stats")
        assert json_output(capsys.readouterr().out)["totalTests"] == 0

        run(seeded_db, "cleanup")
        assert "sessions-removed=0 grants-expired=0" in capsys.readouterr().out
