SERVICE_NAME = "order-pipeline"
