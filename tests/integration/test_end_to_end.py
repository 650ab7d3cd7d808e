"""
Integration tests running both command-line routines against a fake system.
"""

import json
import re
import sys

import pytest


@pytest.mark.integration
class TestDriverInstall:
    """rocm-setup with a package manager that always succeeds."""

    def test_install_writes_snapshot_and_logs_steps(
        self, tmp_path, system_root, fake_runner, key_session, monkeypatch
    ):
        import rocm_setup.cli as cli
        import rocm_setup.installer as installer
        from rocm_setup.cli import main

        monkeypatch.setattr(cli, "CommandRunner", lambda **kwargs: fake_runner)
        monkeypatch.setattr(installer.requests, "Session", lambda: key_session)
        monkeypatch.setenv("SUDO_USER", "tester")

        snapshot_dir = tmp_path / "rocm_rollback"
        log_file = tmp_path / "rocm_install.log"
        rc = main([
            "--system-root", str(system_root),
            "--snapshot-dir", str(snapshot_dir),
            "--log", str(log_file),
            "--no-sudo",
        ])

        assert rc == 0
        assert sorted(p.name for p in snapshot_dir.iterdir()) == [
            "dpkg_selections.txt", "environment", "snapshot.json", "sources.list", "sources.list.d",
        ]

        lines = log_file.read_text().splitlines()
        for line in lines:
            assert re.match(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} - ", line)

        steps = [line.split(" - ", 1)[1] for line in lines if " - Step " in line]
        assert steps == [
            "Step 1/7: Updating system packages...",
            "Step 2/7: Installing prerequisites...",
            "Step 3/7: Adding ROCm repository...",
            "Step 4/7: Installing ROCm...",
            "Step 5/7: Adding user to video and render groups...",
            "Step 6/7: Configuring environment variables...",
            "Step 7/7: Verifying ROCm installation...",
        ]

        snapshot_line = next(i for i, line in enumerate(lines) if "Rollback snapshot created" in line)
        first_step = next(i for i, line in enumerate(lines) if " - Step 1/7" in line)
        assert snapshot_line < first_step

        environment = (system_root / "etc/environment").read_text()
        assert "HSA_OVERRIDE_GFX_VERSION=8.0.3" in environment
        assert (system_root / "etc/apt/sources.list.d/rocm.list").is_file()
        assert (system_root / "etc/profile.d/rocm.sh").is_file()

    def test_rollback_restores_captured_state(
        self, tmp_path, system_root, fake_runner, key_session, monkeypatch
    ):
        import rocm_setup.cli as cli
        import rocm_setup.installer as installer
        from rocm_setup.cli import main

        monkeypatch.setattr(cli, "CommandRunner", lambda **kwargs: fake_runner)
        monkeypatch.setattr(installer.requests, "Session", lambda: key_session)
        monkeypatch.setenv("SUDO_USER", "tester")

        apt_dir = system_root / "etc/apt"
        before = {
            str(p.relative_to(system_root)): p.read_bytes()
            for p in sorted((system_root / "etc").rglob("*"))
            if p.is_file() and (apt_dir in p.parents or p.name == "environment")
        }

        args = [
            "--system-root", str(system_root),
            "--snapshot-dir", str(tmp_path / "rocm_rollback"),
            "--log", str(tmp_path / "rocm_install.log"),
            "--no-sudo",
        ]
        assert main(args) == 0
        assert main(["--rollback", *args]) == 0

        after = {
            str(p.relative_to(system_root)): p.read_bytes()
            for p in sorted((system_root / "etc").rglob("*"))
            if p.is_file() and (apt_dir in p.parents or p.name == "environment")
        }
        assert after == before
        assert fake_runner.lines[-3:] == [
            "dpkg --clear-selections",
            "dpkg --set-selections",
            "apt-get dselect-upgrade -y",
        ]


@pytest.mark.integration
class TestProvisioning:
    """torch-provision with the vision wheel missing upstream."""

    def test_vision_wheel_404_falls_back_to_source_build(
        self, tmp_path, venv_runner, not_found_session
    ):
        from torch_provision.config import ProvisionConfig
        from torch_provision.pipeline import Provisioner
        from torch_provision.strategies import ArtifactDownloader, StrategyKind

        venv_runner.on("import torchvision", stdout=json.dumps({
            "torch": "2.3.1+rocm6.3",
            "torchvision": "0.18.0",
            "accelerator_available": True,
            "hip": "6.3.42131",
        }))
        config = ProvisionConfig(
            venv_dir=tmp_path / "deepseek-env",
            log_file=tmp_path / "pytorch_rocm_install.log",
            work_dir=tmp_path / "build",
            python_executable=sys.executable,
            use_sudo=False,
        )
        downloader = ArtifactDownloader(session=not_found_session)

        report = Provisioner(config, runner=venv_runner, downloader=downloader).run()

        torch_result, vision_result = report.results
        assert torch_result.strategy == StrategyKind.PREBUILT
        assert vision_result.strategy == StrategyKind.SOURCE_BUILD
        assert vision_result.attempted == [StrategyKind.PREBUILT, StrategyKind.SOURCE_BUILD]

        (clone,) = venv_runner.find("git clone")
        assert clone.argv == [
            "git", "clone", "https://github.com/pytorch/vision.git", str(tmp_path / "build" / "vision"),
        ]
        assert "git checkout v0.18.0" in venv_runner.lines
        assert venv_runner.find(".whl") == []
        assert not any(p.suffix in (".whl", ".part") for p in (tmp_path / "build").iterdir())
        assert report.verification.healthy

        not_found_session.get.assert_called_once()
