"""Pytest fixtures for integration tests."""

import os
import subprocess
import time
import base64
import datetime
import ipaddress
import shutil
import sys

import pytest
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from khcheck_admission.config import KHCHECK_RESOURCE, ServerConfig
from khcheck_admission.server import WebhookServer
from khcheck_admission.validator import AdmissionValidator


CLUSTER_NAME = "khcheck-admission-test"
WEBHOOK_PORT = 8443
WEBHOOK_NAME = "khcheck-admission-test"
CRD_NAME = f"{KHCHECK_RESOURCE.resource}.{KHCHECK_RESOURCE.group}"


def _first_line(text: str) -> str:
    cleaned = (text or "").strip()
    if not cleaned:
        return ""
    return cleaned.splitlines()[0]


def _running_on_github_actions() -> bool:
    return os.environ.get("GITHUB_ACTIONS", "").lower() == "true"


def _skip_or_fail(reason: str) -> None:
    if _running_on_github_actions():
        pytest.fail(reason)
    pytest.skip(f"Skipping integration tests: {reason}")


def _ensure_integration_runtime() -> None:
    for binary in ("docker", "kind", "kubectl"):
        if shutil.which(binary) is None:
            _skip_or_fail(f"required binary '{binary}' is not installed.")

    try:
        docker_info = subprocess.run(
            ["docker", "info"],
            check=False,
            capture_output=True,
            text=True,
        )
    except OSError as exc:
        _skip_or_fail(f"unable to run docker ({exc}).")

    if docker_info.returncode != 0:
        reason = _first_line(docker_info.stderr) or _first_line(docker_info.stdout)
        if not reason:
            reason = "docker info failed"
        _skip_or_fail(f"Docker is unavailable ({reason}).")


def _webhook_host() -> str:
    override = os.environ.get("KIND_WEBHOOK_HOST")
    if override:
        return override

    if sys.platform == "darwin":
        return "host.docker.internal"

    try:
        result = subprocess.run(
            [
                "docker",
                "network",
                "inspect",
                "kind",
                "--format",
                "{{(index .IPAM.Config 0).Gateway}}",
            ],
            check=True,
            capture_output=True,
            text=True,
        )
        gateway = result.stdout.strip()
        if gateway:
            return gateway
    except (OSError, subprocess.CalledProcessError):
        pass

    return "host.docker.internal"


@pytest.fixture(scope="session")
def kind_cluster():
    """
    Create (or reuse) a kind cluster for tests.

    The cluster is left running at session end so repeated runs stay fast;
    delete it with ``kind delete cluster --name khcheck-admission-test``.
    """
    _ensure_integration_runtime()

    existing = subprocess.run(
        ["kind", "get", "clusters"], check=False, capture_output=True, text=True
    )
    if CLUSTER_NAME not in existing.stdout.split():
        try:
            subprocess.run(
                ["kind", "create", "cluster", "--name", CLUSTER_NAME, "--wait", "120s"],
                check=True,
                capture_output=True,
                text=True,
            )
        except subprocess.CalledProcessError as e:
            error_text = (e.stderr or e.stdout or "").lower()
            if "permission denied while trying to connect to the docker api" in error_text:
                _skip_or_fail("Docker socket is not accessible for kind.")
            pytest.fail(f"Failed to setup kind cluster: {e.stderr}")

    try:
        config.load_kube_config(context=f"kind-{CLUSTER_NAME}")
    except Exception as e:
        pytest.fail(f"Failed to load kubeconfig: {e}")

    yield {"name": CLUSTER_NAME, "context": f"kind-{CLUSTER_NAME}"}


@pytest.fixture(scope="session")
def webhook_certs(tmp_path_factory, kind_cluster):
    """Generate self-signed certificates for webhook server."""
    from cryptography import x509
    from cryptography.x509.oid import NameOID
    from cryptography.hazmat.primitives import hashes
    from cryptography.hazmat.primitives.asymmetric import rsa
    from cryptography.hazmat.primitives import serialization

    cert_dir = tmp_path_factory.mktemp("certs")

    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
    )

    webhook_host = _webhook_host()
    alt_names = [
        x509.DNSName("localhost"),
        x509.DNSName("host.docker.internal"),
    ]
    try:
        host_name = x509.IPAddress(ipaddress.ip_address(webhook_host))
    except ValueError:
        host_name = x509.DNSName(webhook_host)
    if host_name not in alt_names:
        alt_names.append(host_name)
    subject = issuer = x509.Name(
        [
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "khcheck-admission test"),
            x509.NameAttribute(NameOID.COMMON_NAME, "khcheck-admission"),
        ]
    )

    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=1))
        .add_extension(x509.SubjectAlternativeName(alt_names), critical=False)
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(private_key, hashes.SHA256())
    )

    key_file = cert_dir / "tls.key"
    cert_file = cert_dir / "tls.crt"
    key_file.write_bytes(
        private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    cert_pem = cert.public_bytes(serialization.Encoding.PEM)
    cert_file.write_bytes(cert_pem)

    return {
        "cert_file": str(cert_file),
        "key_file": str(key_file),
        "ca_bundle_b64": base64.b64encode(cert_pem).decode("utf-8"),
    }


@pytest.fixture(scope="session")
def webhook_server(webhook_certs):
    """Start the webhook server over TLS."""
    server = WebhookServer(
        ServerConfig(
            host="0.0.0.0",
            port=WEBHOOK_PORT,
            cert_file=webhook_certs["cert_file"],
            key_file=webhook_certs["key_file"],
        ),
        AdmissionValidator(),
    )
    server.start()
    time.sleep(1)

    yield server

    server.stop()


@pytest.fixture(scope="session")
def k8s_client(kind_cluster):
    """Get Kubernetes API clients."""
    return {
        "extensions": client.ApiextensionsV1Api(),
        "admission": client.AdmissionregistrationV1Api(),
        "custom": client.CustomObjectsApi(),
    }


@pytest.fixture(scope="session")
def khcheck_crd(k8s_client):
    """Install a permissive KuberhealthyCheck CRD so the webhook sees raw objects."""
    extensions_api = k8s_client["extensions"]
    crd = client.V1CustomResourceDefinition(
        metadata=client.V1ObjectMeta(name=CRD_NAME),
        spec=client.V1CustomResourceDefinitionSpec(
            group=KHCHECK_RESOURCE.group,
            scope="Namespaced",
            names=client.V1CustomResourceDefinitionNames(
                plural=KHCHECK_RESOURCE.resource,
                singular="khcheck",
                kind="KuberhealthyCheck",
                short_names=["khc"],
            ),
            versions=[
                client.V1CustomResourceDefinitionVersion(
                    name=KHCHECK_RESOURCE.version,
                    served=True,
                    storage=True,
                    schema=client.V1CustomResourceValidation(
                        open_apiv3_schema=client.V1JSONSchemaProps(
                            type="object",
                            x_kubernetes_preserve_unknown_fields=True,
                        )
                    ),
                )
            ],
        ),
    )

    try:
        extensions_api.create_custom_resource_definition(crd)
    except ApiException as e:
        if e.status != 409:  # Already exists
            raise

    for _ in range(30):
        current = extensions_api.read_custom_resource_definition(CRD_NAME)
        conditions = (current.status and current.status.conditions) or []
        if any(c.type == "Established" and c.status == "True" for c in conditions):
            break
        time.sleep(1)
    else:
        pytest.fail(f"CRD {CRD_NAME} was not established")

    return crd


@pytest.fixture(scope="function")
def webhook_configured(k8s_client, webhook_certs, webhook_server, khcheck_crd):
    """
    Deploy ValidatingWebhookConfiguration for khchecks.

    This fixture is function-scoped and cleans up after each test.
    """
    admission_api = k8s_client["admission"]

    webhook_config = client.V1ValidatingWebhookConfiguration(
        metadata=client.V1ObjectMeta(name=WEBHOOK_NAME),
        webhooks=[
            client.V1ValidatingWebhook(
                name=f"{WEBHOOK_NAME}.{KHCHECK_RESOURCE.group}",
                client_config=client.AdmissionregistrationV1WebhookClientConfig(
                    url=f"https://{_webhook_host()}:{WEBHOOK_PORT}/validate",
                    ca_bundle=webhook_certs["ca_bundle_b64"],
                ),
                rules=[
                    client.V1RuleWithOperations(
                        operations=["CREATE", "UPDATE"],
                        api_groups=[KHCHECK_RESOURCE.group],
                        api_versions=[KHCHECK_RESOURCE.version],
                        resources=[KHCHECK_RESOURCE.resource],
                    )
                ],
                admission_review_versions=["v1"],
                side_effects="None",
                timeout_seconds=10,
                failure_policy="Fail",
            )
        ],
    )

    try:
        admission_api.create_validating_webhook_configuration(webhook_config)
    except ApiException as e:
        if e.status == 409:  # Already exists
            admission_api.patch_validating_webhook_configuration(WEBHOOK_NAME, webhook_config)
        else:
            raise

    time.sleep(3)  # Wait for webhook to be ready

    yield webhook_config

    try:
        admission_api.delete_validating_webhook_configuration(WEBHOOK_NAME)
    except ApiException:
        pass  # Already deleted
