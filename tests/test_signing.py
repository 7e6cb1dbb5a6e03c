"""Tests for signing module."""

import json
from unittest.mock import patch

import pytest

from maccel_rpm.signing import CosignSigner, SigningError, write_signing_summary

from tests.conftest import PACKAGES

ACTIONS_ENV = {
    "GITHUB_ACTIONS": "true",
    "ACTIONS_ID_TOKEN_REQUEST_TOKEN": "token",
    "ACTIONS_ID_TOKEN_REQUEST_URL": "https://token.example.com",
}


@pytest.fixture
def package_dir(tmp_path):
    for name in PACKAGES:
        (tmp_path / name).write_bytes(b"rpm")
    return tmp_path


class TestAvailability:
    """Tests for CosignSigner.is_available."""

    def test_outside_actions(self):
        """Test signing is unavailable outside GitHub Actions."""
        assert CosignSigner(env={}).is_available() is False

    def test_missing_oidc_token(self):
        """Test signing needs the id-token permission."""
        assert CosignSigner(env={"GITHUB_ACTIONS": "true"}).is_available() is False

    def test_missing_cosign(self):
        """Test signing needs cosign."""
        with patch("maccel_rpm.signing.shutil.which", return_value=None):
            assert CosignSigner(env=ACTIONS_ENV).is_available() is False

    def test_available(self):
        """Test all requirements met."""
        with patch("maccel_rpm.signing.shutil.which", return_value="/usr/bin/cosign"):
            assert CosignSigner(env=ACTIONS_ENV).is_available() is True


class TestSign:
    """Tests for CosignSigner.sign."""

    def test_sign_all_packages(self, package_dir):
        """Test every RPM is signed."""
        with patch("maccel_rpm.signing.run_command", return_value=(0, "", "")) as run:
            results = CosignSigner(env=ACTIONS_ENV).sign(package_dir)

        assert [r.package for r in results] == PACKAGES
        assert all(r.signed for r in results)
        assert results[0].signature_file == f"{PACKAGES[0]}.sig"
        cmd = run.call_args_list[0][0][0]
        assert cmd[:3] == ["cosign", "sign-blob", "--yes"]
        assert "--output-certificate" in cmd

    def test_sign_failure(self, package_dir):
        """Test a cosign failure raises."""
        with patch("maccel_rpm.signing.run_command", return_value=(1, "", "oidc error")):
            with pytest.raises(SigningError, match="oidc error"):
                CosignSigner(env=ACTIONS_ENV).sign(package_dir)

    def test_no_packages(self, tmp_path):
        """Test an empty directory raises."""
        with pytest.raises(SigningError):
            CosignSigner(env=ACTIONS_ENV).sign(tmp_path)


class TestVerify:
    """Tests for CosignSigner.verify."""

    def test_unsigned_package(self, package_dir):
        """Test packages without signatures fail verification."""
        results = CosignSigner(env={}).verify(package_dir)
        assert [r.verified for r in results] == [False, False]
        assert results[0].message == "no signature"

    def test_verified(self, package_dir):
        """Test cosign verify-blob success."""
        for name in PACKAGES:
            (package_dir / f"{name}.sig").write_text("sig")
            (package_dir / f"{name}.crt").write_text("crt")
        with patch("maccel_rpm.signing.run_command", return_value=(0, "", "")) as run:
            results = CosignSigner(env={}).verify(package_dir)
        assert all(r.verified for r in results)
        assert run.call_args_list[0][0][0][1] == "verify-blob"

    def test_verification_failure(self, package_dir):
        """Test cosign verify-blob failure."""
        (package_dir / f"{PACKAGES[0]}.sig").write_text("sig")
        with patch("maccel_rpm.signing.run_command", return_value=(1, "", "bad signature")):
            results = CosignSigner(env={}).verify(package_dir)
        assert results[0].verified is False
        assert results[0].message == "bad signature"


class TestSigningSummary:
    """Tests for write_signing_summary."""

    def test_summary(self, package_dir):
        """Test the summary file contents."""
        with patch("maccel_rpm.signing.run_command", return_value=(0, "", "")):
            results = CosignSigner(env=ACTIONS_ENV).sign(package_dir)
        path = write_signing_summary(package_dir, results)
        data = json.loads(path.read_text())
        assert data["signing_method"] == "sigstore-keyless"
        assert data["packages_processed"] == 2
        assert data["packages_signed"] == 2
