"""Pytest configuration and shared fixtures."""

import os
import sys
from datetime import datetime, timezone

import pytest
from kubernetes import client
from kubernetes.client.exceptions import ApiException

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))


def make_pod(
    name,
    namespace="default",
    node_name="node-a",
    pod_ip="10.0.0.1",
    phase="Running",
    conditions=None,
    labels=None,
):
    """Build a V1Pod with the fields the sampler reads."""
    return client.V1Pod(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, labels=labels or {}),
        spec=client.V1PodSpec(node_name=node_name, containers=[]),
        status=client.V1PodStatus(pod_ip=pod_ip, phase=phase, conditions=conditions),
    )


def make_condition(cond_type, status="True", when=None):
    return client.V1PodCondition(
        type=cond_type,
        status=status,
        last_transition_time=when or datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc),
    )


class FakeCoreV1Api:
    """In-memory stand-in for CoreV1Api covering pods and ConfigMaps.

    Label selectors are matched on exact "key=value" terms only.
    """

    def __init__(self, pods=None):
        self.pods = list(pods or [])
        self.config_maps = {}
        self.calls = []
        self.list_error = None
        self.read_error = None
        self.create_error = None
        self.replace_error = None

    def _select(self, pods, label_selector):
        if not label_selector:
            return pods
        terms = [t.split("=", 1) for t in label_selector.split(",")]
        return [
            p for p in pods
            if all((p.metadata.labels or {}).get(k) == v for k, v in terms)
        ]

    def list_namespaced_pod(self, namespace, label_selector=None):
        self.calls.append(("list_namespaced_pod", namespace, label_selector))
        if self.list_error:
            raise self.list_error
        pods = [p for p in self.pods if p.metadata.namespace == namespace]
        return client.V1PodList(items=self._select(pods, label_selector))

    def list_pod_for_all_namespaces(self, label_selector=None):
        self.calls.append(("list_pod_for_all_namespaces", label_selector))
        if self.list_error:
            raise self.list_error
        return client.V1PodList(items=self._select(self.pods, label_selector))

    def read_namespaced_config_map(self, name, namespace):
        self.calls.append(("read", namespace, name))
        if self.read_error:
            raise self.read_error
        if (namespace, name) not in self.config_maps:
            raise ApiException(status=404, reason="Not Found")
        stored = self.config_maps[(namespace, name)]
        return client.V1ConfigMap(
            metadata=client.V1ObjectMeta(
                name=name, namespace=namespace, labels=dict(stored["labels"])
            ),
            data=dict(stored["data"]),
        )

    @staticmethod
    def _snapshot(body):
        return {
            "data": dict(body.data or {}),
            "labels": dict(body.metadata.labels or {}),
        }

    def create_namespaced_config_map(self, namespace, body):
        self.calls.append(("create", namespace, body.metadata.name))
        if self.create_error:
            raise self.create_error
        if (namespace, body.metadata.name) in self.config_maps:
            raise ApiException(status=409, reason="Conflict")
        self.config_maps[(namespace, body.metadata.name)] = self._snapshot(body)
        return body

    def replace_namespaced_config_map(self, name, namespace, body):
        self.calls.append(("replace", namespace, name))
        if self.replace_error:
            raise self.replace_error
        if (namespace, name) not in self.config_maps:
            raise ApiException(status=404, reason="Not Found")
        self.config_maps[(namespace, name)] = self._snapshot(body)
        return body

    def data_of(self, name, namespace="default"):
        return dict(self.config_maps[(namespace, name)]["data"])

    def labels_of(self, name, namespace="default"):
        return dict(self.config_maps[(namespace, name)]["labels"])


class FakeClock:
    """Controllable clock returning a fixed datetime until moved."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def set(self, now):
        self.now = now


@pytest.fixture
def core_api():
    """Provide an empty fake CoreV1Api."""
    return FakeCoreV1Api()


@pytest.fixture
def clock():
    """Provide a clock fixed at 2024-05-01 10:15 UTC."""
    return FakeClock(datetime(2024, 5, 1, 10, 15, 0, tzinfo=timezone.utc))
