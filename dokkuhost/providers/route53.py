import ipaddress
import logging
from functools import wraps

import boto3
import click
from botocore.exceptions import BotoCoreError, ClientError

from ..components import Component
from ..lazy import NotAvailable, evaluate
from ..props import Prop
from ..results import OperationError, Result

logger = logging.getLogger(__name__)

TTL = 300


def fqdn(name):
    """
    Absolute form of a DNS name, as Route53 returns it: with a trailing dot
    and ``*`` written as ``\\052``.
    """

    name = name if name.endswith(".") else f"{name}."
    return name.replace("*", "\\052").lower()


class Route53Error(OperationError):
    pass


def wrap_errors(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)

        except (BotoCoreError, ClientError) as error:
            raise Route53Error(
                f"Route53 {func.__name__} failed",
                result=Result(failed=True, output=str(error)),
            ) from error

    return wrapper


class Route53Api:
    """
    Read and create DNS records in Route53 hosted zones.

    :param access_key: AWS access key id.
    :param secret_key: AWS secret access key.
    :param client: A boto3 ``route53`` client to use instead of creating one.
    """

    def __init__(self, access_key=None, secret_key=None, client=None):
        self.client = client or boto3.Session(
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
        ).client("route53")

    @wrap_errors
    def get_zone_id(self, zone):
        response = self.client.list_hosted_zones_by_name(DNSName=zone, MaxItems="1")
        for hosted_zone in response["HostedZones"]:
            if hosted_zone["Name"] == fqdn(zone):
                return hosted_zone["Id"]

        raise Route53Error(
            f"Hosted zone {zone!r} not found",
            result=Result(failed=True, output=f"No Route53 hosted zone for {zone}"),
        )

    @wrap_errors
    def get_records(self, zone, name, type) -> list[dict]:
        """
        Record sets of the given name and type in ``zone``.
        """

        response = self.client.list_resource_record_sets(
            HostedZoneId=self.get_zone_id(zone),
            StartRecordName=fqdn(name),
            StartRecordType=type,
            MaxItems="1",
        )
        return [
            record
            for record in response["ResourceRecordSets"]
            if record["Name"].lower() == fqdn(name) and record["Type"] == type
        ]

    @wrap_errors
    def create_record(self, zone, name, type, value, ttl=TTL, overwrite=False):
        """
        Create a record set with a single value. With ``overwrite``, an
        existing record set of the same name and type is replaced.
        """

        self.client.change_resource_record_sets(
            HostedZoneId=self.get_zone_id(zone),
            ChangeBatch=dict(
                Changes=[
                    dict(
                        Action="UPSERT" if overwrite else "CREATE",
                        ResourceRecordSet=dict(
                            Name=fqdn(name),
                            Type=type,
                            TTL=ttl,
                            ResourceRecords=[dict(Value=value)],
                        ),
                    ),
                ],
            ),
        )
        logger.info("Created %s record %s -> %s", type, name, value)


def check_ip_address(name, address):
    try:
        ipaddress.ip_address(address)

    except ValueError:
        raise OperationError(
            "A records need an IP address",
            result=Result(
                failed=True,
                output=f"{name} resolves to {address!r}, which is not an IP "
                "address; configure a server provider or create the "
                "records by hand",
            ),
        )


class Route53Records(Component):
    """
    ``A`` records for the target name and its wildcard subdomains, in the
    hosted zone of the same name. They're only created when the zone has
    no ``A`` record for the name yet; existing records are never updated,
    even if they point somewhere else.

    :param name: The target name, also the zone name.
    :param address: IP address the records point to. May be lazy.
    """

    class Props:
        name = Prop(str)
        address = Prop(str, lazy=True)
        api = Prop(Route53Api)

    @classmethod
    def for_target(cls, target, address, api=None):
        return cls(
            name=target.name,
            address=address,
            api=api
            or Route53Api(
                access_key=target.aws_access_key,
                secret_key=target.aws_secret_key,
            ),
        )

    @property
    def record_names(self):
        return [self.props.name, f"*.{self.props.name}"]

    def deploy(self, dry_run=False):
        name = self.props.name
        api = self.props.api

        existing = api.get_records(zone=name, name=name, type="A")
        if existing:
            logger.debug("%s already has A records, leaving them alone", name)
            return Result()

        try:
            address = evaluate(self.props.address)

        except NotAvailable:
            if not dry_run:
                raise
            address = "(new address)"

        else:
            check_ip_address(name, address)

        output = "".join(f"{n} A {address}\n" for n in self.record_names)

        if not dry_run:
            for record_name in self.record_names:
                api.create_record(
                    zone=name,
                    name=record_name,
                    type="A",
                    value=address,
                    ttl=TTL,
                    overwrite=True,
                )

        return Result(changed=True, output=output)

    def add_commands(self, cli):
        @cli.command
        def records():
            """Show the A records for the target"""
            for record_name in self.record_names:
                for record in self.props.api.get_records(
                    zone=self.props.name, name=record_name, type="A"
                ):
                    values = [r["Value"] for r in record["ResourceRecords"]]
                    click.echo(f"{record_name} {record['TTL']} A {' '.join(values)}")
