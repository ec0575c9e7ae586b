import os
import logging
import boto3

ssm = boto3.client("ssm")
for var in ["GITHUB_TOKEN"]:
    if var not in os.environ:
        os.environ[var] = ssm.get_parameter(
            Name=os.environ["SSM_PREFIX"] + "/" + var, WithDecryption=True
        )["Parameter"]["Value"]

logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))

from mangum import Mangum
from pubgate.app import create_app

lambda_handler = Mangum(create_app())
