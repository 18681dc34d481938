"""Tests for main.py module."""

import threading
import time
from unittest.mock import MagicMock, patch

import main as main_module
from conftest import FakeCoreV1Api, make_pod


class TestArgumentHandling:
    """Tests for flag parsing and configuration errors."""

    def test_flags_default_to_none(self):
        args = main_module.build_parser().parse_args([])

        assert args.config is None
        assert args.oneshot is None
        assert args.store is None
        assert args.namespace is None

    def test_flags_override_config_file(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("sampler:\n  namespace: prod\n  interval: 5m\n")
        args = main_module.build_parser().parse_args(
            ["--config", str(config_file), "--namespace", "dev", "--oneshot", "--store"]
        )

        cfg = main_module.load_settings(args)

        assert cfg.sampler.namespace == "dev"
        assert cfg.sampler.interval_seconds == 300
        assert cfg.sampler.oneshot is True
        assert cfg.store.enabled is True

    def test_compound_interval_flag_accepted(self):
        args = main_module.build_parser().parse_args(["--interval", "1m30s"])

        cfg = main_module.load_settings(args)

        assert cfg.sampler.interval_seconds == 90

    def test_invalid_config_returns_1(self, tmp_path):
        result = main_module.main(["--config", str(tmp_path / "missing.yaml")])

        assert result == 1

    def test_invalid_interval_returns_1(self):
        result = main_module.main(["--interval", "never"])

        assert result == 1

    def test_credential_failure_returns_1(self):
        with patch("main.kube_client.build_core_api", side_effect=RuntimeError("no creds")):
            result = main_module.main(["--oneshot"])

        assert result == 1


class TestOneshot:
    """Tests for oneshot mode."""

    def test_oneshot_samples_once_and_returns_0(self, capsys):
        api = FakeCoreV1Api([make_pod("web-1"), make_pod("db-1")])

        with patch("main.kube_client.build_core_api", return_value=api), \
             patch("main.kube_client.context_name", return_value=None):
            result = main_module.main(["--oneshot", "--name", "web"])

        assert result == 0
        assert len(api.calls) == 1
        out = capsys.readouterr().out.splitlines()
        assert len(out) == 1
        assert '"pod_name":"web-1"' in out[0]

    def test_oneshot_list_failure_returns_1(self):
        api = FakeCoreV1Api()
        api.list_error = RuntimeError("connection refused")

        with patch("main.kube_client.build_core_api", return_value=api), \
             patch("main.kube_client.context_name", return_value=None):
            result = main_module.main(["--oneshot"])

        assert result == 1

    def test_store_flag_writes_hourly_config_map(self, capsys):
        api = FakeCoreV1Api([make_pod("web-1", namespace="prod", node_name="node-9")])

        with patch("main.kube_client.build_core_api", return_value=api), \
             patch("main.kube_client.context_name", return_value=None):
            result = main_module.main(
                ["--oneshot", "--store", "--store-namespace", "audit"]
            )

        assert result == 0
        assert len(api.config_maps) == 1
        (namespace, name), = api.config_maps.keys()
        assert namespace == "audit"
        assert name.startswith("pod-ashiato-")
        assert api.data_of(name, namespace="audit") == {"prod_web-1": "node-9"}


class TestRepeatingMode:
    """Tests for the repeating loop wiring."""

    def test_repeating_mode_runs_until_shutdown(self):
        fake_sampler = MagicMock()
        captured = {}

        def fake_run(shutdown_event):
            captured["event"] = shutdown_event

        fake_sampler.run.side_effect = fake_run

        with patch("main.kube_client.build_core_api", return_value=FakeCoreV1Api()), \
             patch("main.kube_client.context_name", return_value=None), \
             patch("main.sampler.Sampler", return_value=fake_sampler), \
             patch("main.signal.signal") as signal_mock:
            result = main_module.main(["--interval", "1s"])

        assert result == 0
        fake_sampler.run.assert_called_once()
        fake_sampler.run_once.assert_not_called()
        assert isinstance(captured["event"], threading.Event)
        assert signal_mock.call_count == 2

    def test_shutdown_event_wait_exits_immediately(self):
        """shutdown_event.wait() must return as soon as the event is set."""
        shutdown_event = threading.Event()
        results = []

        def waiter():
            start = time.time()
            shutdown_event.wait(timeout=30)
            results.append(time.time() - start)

        t = threading.Thread(target=waiter)
        t.start()
        time.sleep(0.05)
        shutdown_event.set()
        t.join(timeout=2)

        assert not t.is_alive(), "Thread should have exited"
        assert results[0] < 1.0, f"Wait took {results[0]:.2f}s, expected < 1s"
