#!/usr/bin/env python3
"""
Kubarango - Main Entry Point

This is the thin orchestration layer that:
1. Loads configuration
2. Initializes modules
3. Runs the operator and its HTTP surface

All reconciliation logic is in the modules, following black box principles.
"""

import logging
import logging.config as log_config
from contextlib import asynccontextmanager
from typing import Optional

import redis.asyncio as redis
import uvicorn
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from kubernetes_asyncio import client as k8s_client
from kubernetes_asyncio import config as k8s_config
from kubernetes_asyncio.config import ConfigException

from kubarango.config.provider import ConfigProvider, EnvConfigProvider
from kubarango.config.timeouts import GlobalTimeouts
from kubarango.logging_config import get_logging_config
from kubarango.modules.api import DeploymentSpec, HealthResponse, SpecValidationError
from kubarango.modules.arangod import ArangodClient
from kubarango.modules.config import get_config
from kubarango.modules.deployment import Deployment, Operator
from kubarango.modules.events import EventRecorder
from kubarango.modules.features import FeatureGates
from kubarango.modules.k8s import KubernetesInspector, KubernetesPodClient, validate_resource_name
from kubarango.modules.reconcile import PlanExecutor
from kubarango.modules.scaling import ClusterScalingIntegration
from kubarango.modules.storage import (
    ConflictError,
    NotFoundError,
    RedisStatusStore,
    StorageModule,
)

# Get configuration
config = get_config()

log_config.dictConfig(get_logging_config(config.get("log_level")))
logger = logging.getLogger(__name__)

# Configuration provider (centralized config access)
config_provider: ConfigProvider = EnvConfigProvider()

# Module instances (initialized at startup)
storage_module: Optional[StorageModule] = None
redis_client: Optional[redis.Redis] = None
store: Optional[RedisStatusStore] = None
events: Optional[EventRecorder] = None
operator: Optional[Operator] = None
api_client: Optional[k8s_client.ApiClient] = None


async def load_kubernetes_config() -> None:
    """Prefer the in-cluster service account, fall back to a kubeconfig file."""
    try:
        k8s_config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes configuration")
    except ConfigException:
        await k8s_config.load_kube_config()
        logger.info("Loaded Kubernetes configuration from kubeconfig")


def build_deployment_factory(
    pods: KubernetesPodClient,
    inspector: KubernetesInspector,
    features: FeatureGates,
    timeouts: GlobalTimeouts,
):
    """Return a callable creating the control loop of one deployment."""
    namespace = config.get("namespace")
    arangod_config = config_provider.get_arangod_config()
    scaling_config = config_provider.get_scaling_config()

    def create(name: str) -> Deployment:
        arangod = ArangodClient.for_deployment(name, namespace, arangod_config, timeouts)
        scaling = ClusterScalingIntegration(name, store, arangod, scaling_config, events)
        return Deployment(
            name,
            store,
            pods,
            inspector,
            namespace=namespace,
            features=features,
            events=events,
            scaling=scaling,
            arangod=arangod,
            executor=PlanExecutor(timeouts=timeouts),
            min_interval=config.get("reconcile_interval"),
            max_interval=config.get("max_reconcile_interval"),
        )

    return create


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle - initialize and cleanup resources.
    """
    global storage_module, redis_client, store, events, operator, api_client

    logger.info("Starting Kubarango operator...")

    storage_module = StorageModule(config.redis_url(), password=config.get("redis_password"))
    redis_client = await storage_module.connect()

    timeouts = GlobalTimeouts(config_provider.get_timeout_config())
    store = RedisStatusStore(redis_client, timeouts)
    events = EventRecorder(redis_client)

    await load_kubernetes_config()
    api_client = k8s_client.ApiClient()
    pods = KubernetesPodClient(api_client, config.get("namespace"), timeouts)
    inspector = KubernetesInspector(pods)

    features = FeatureGates.from_config(config_provider.get_feature_config())

    operator = Operator(store, build_deployment_factory(pods, inspector, features, timeouts))
    await operator.start()
    logger.info("Kubarango operator started successfully")

    yield

    logger.info("Shutting down Kubarango operator...")
    if operator:
        await operator.stop()
    if api_client:
        await api_client.close()
    if storage_module:
        await storage_module.disconnect()
    logger.info("Kubarango operator shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Kubarango API",
    description="Kubarango - ArangoDB deployments on Kubernetes",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config_provider.get_api_config().cors_origins,
    allow_methods=["GET", "PUT", "DELETE"],
    allow_headers=["*"],
)


def require_store() -> RedisStatusStore:
    if not store:
        raise HTTPException(503, "Service not initialized")
    return store


# Deployment Endpoints


@app.get("/api/v1/deployments")
async def list_deployments():
    """List names of all deployments in the Status Store."""
    return {"deployments": await require_store().list_names()}


@app.get("/api/v1/deployments/{name}")
async def get_deployment(name: str):
    """
    Get spec, status and version of a deployment.

    Returns:
        200: The stored record
        404: Unknown deployment
    """
    record = await require_store().read(name)
    return record.model_dump(mode="json")


@app.put("/api/v1/deployments/{name}/spec")
async def put_deployment_spec(name: str, spec: DeploymentSpec):
    """
    Create a deployment or replace its spec.

    The spec is validated before it is stored; the write is a
    compare-and-swap against the version read just before.

    Returns:
        200: Spec replaced
        201: Deployment created
        409: Concurrent modification
        422: Spec outside its bounds
    """
    current_store = require_store()
    validate_resource_name(name)
    spec.validate_spec()

    try:
        current = await current_store.read(name)
    except NotFoundError:
        record = await current_store.create(name, spec)
        if operator:
            await operator.sync()
        return JSONResponse(status_code=201, content=record.model_dump(mode="json"))

    record = await current_store.compare_and_swap(name, current.version, spec=spec)
    logger.info(f"Updated spec of {name} to version {record.version}")
    return record.model_dump(mode="json")


@app.delete("/api/v1/deployments/{name}", status_code=204)
async def delete_deployment(name: str):
    """Remove a deployment from the Status Store; its control loop stops."""
    current_store = require_store()
    await current_store.read(name)
    await current_store.delete(name)
    if operator:
        await operator.sync()


@app.get("/api/v1/deployments/{name}/plan")
async def get_deployment_plan(name: str):
    """Get the pending plan of a deployment, first action first."""
    record = await require_store().read(name)
    return {"plan": record.status.plan.model_dump(mode="json")}


@app.get("/api/v1/deployments/{name}/events")
async def get_deployment_events(name: str, limit: int = Query(100, ge=1, le=1000)):
    """Get the most recent events of a deployment, newest first."""
    await require_store().read(name)
    if not events:
        raise HTTPException(503, "Service not initialized")
    return {"events": await events.list_events(name, limit)}


# Health/Monitoring Endpoints


@app.get("/ready")
async def ready():
    """
    Readiness probe: the operator supervises its deployments.

    Returns:
        200: Operator running
        503: Not started yet
    """
    if not operator:
        return JSONResponse(status_code=503, content={"status": "not ready"})
    return {"status": "ready", "deployments": len(operator.deployments)}


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Health check endpoint.

    Returns:
        200: Service healthy
        503: Service unhealthy
    """
    try:
        if redis_client:
            await redis_client.ping()
            redis_status = "connected"
        else:
            redis_status = "disconnected"

        if redis_status == "connected" and operator:
            return HealthResponse(
                status="healthy",
                redis=redis_status,
                deployments=len(operator.deployments),
            )
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "redis": redis_status},
        )
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "unhealthy", "error": str(e)})


# Error handlers


@app.exception_handler(NotFoundError)
async def not_found_handler(request, exc):
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(ConflictError)
async def conflict_handler(request, exc):
    """Handle optimistic concurrency conflicts."""
    logger.warning(f"Conflict: {exc}")
    return JSONResponse(status_code=409, content={"error": str(exc)})


@app.exception_handler(SpecValidationError)
async def spec_validation_handler(request, exc):
    """Handle specs outside their group bounds."""
    logger.warning(f"Spec validation failed: {exc}")
    return JSONResponse(status_code=422, content={"error": str(exc)})


@app.exception_handler(redis.ConnectionError)
async def redis_error_handler(request, exc):
    """Handle Redis connection errors."""
    logger.error(f"Redis connection error: {exc}")
    return JSONResponse(status_code=503, content={"error": "Database connection failed"})


@app.exception_handler(ValueError)
async def validation_error_handler(request, exc):
    """Handle validation errors."""
    logger.error(f"Validation error: {exc}")
    return JSONResponse(status_code=400, content={"error": str(exc)})


def run() -> None:
    """Console entry point."""
    uvicorn.run(
        "kubarango.main:app",
        host=config.get("host"),
        port=config.get("port"),
        log_level=config.get("log_level").lower(),
        reload=config.get("debug"),
        log_config=get_logging_config(config.get("log_level")),
    )


if __name__ == "__main__":
    run()
