"""Names shared with the cluster: finalizers, annotations, labels, ports."""

ARANGO_PORT = 8529
ARANGO_SYNC_MASTER_PORT = 8629
ARANGO_SYNC_WORKER_PORT = 8729

TOPOLOGY_KEY_HOSTNAME = "kubernetes.io/hostname"
NODE_ARCH_AFFINITY_LABEL = "kubernetes.io/arch"

# Finalizers
FINALIZER_POD_GRACEFUL_SHUTDOWN = "database.arangodb.com/graceful-shutdown"
FINALIZER_DELAY_POD_TERMINATION = "pod.database.arangodb.com/delay"

# Annotations
ANNOTATION_ROTATE = "deployment.arangodb.com/rotate"
ANNOTATION_POD_CHECKSUM = "deployment.arangodb.com/template-checksum"

# Labels
LABEL_APP = "app"
LABEL_APP_VALUE = "arangodb"
LABEL_DEPLOYMENT = "arango_deployment"
LABEL_ROLE = "role"
LABEL_MEMBER_ID = "deployment.arangodb.com/member"
