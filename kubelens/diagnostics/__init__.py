"""Health and security analyzers for individual Kubernetes resources."""