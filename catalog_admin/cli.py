from __future__ import annotations

from typing import Iterable

import click
from flask.cli import AppGroup
from pydantic import ValidationError

from catalog_admin.errors import CategoryError
from catalog_admin.extensions import db
from catalog_admin.schemas.categories import CategoryCreate, CategoryTree
from catalog_admin.services.categories import get_category_engine, invalidate_tree_cache

categories_cli = AppGroup("categories", help="Inspect and edit the category tree.")


def _fail(e: CategoryError) -> click.ClickException:
    details = ", ".join(f"{k}={v}" for k, v in e.details.items())
    return click.ClickException(f"{e.code}: {e}" + (f" ({details})" if details else ""))


def _echo_tree(entries: Iterable[CategoryTree]) -> None:
    for entry in entries:
        suffix = "" if entry.is_active else " (inactive)"
        click.echo(f"{'  ' * entry.depth}{entry.name} [{entry.slug}] {entry.id}{suffix}")
        _echo_tree(entry.children)


@categories_cli.command("tree")
@click.option("--all", "include_inactive", is_flag=True, help="Include inactive categories.")
def tree_command(include_inactive: bool) -> None:
    roots = get_category_engine().build_tree(include_inactive=include_inactive)
    if not roots:
        click.echo("No categories")
        return
    _echo_tree(roots)


@categories_cli.command("path")
@click.argument("category_id")
def path_command(category_id: str) -> None:
    try:
        path = get_category_engine().get_ancestor_path(category_id)
    except CategoryError as e:
        raise _fail(e)
    click.echo(" > ".join(node.name for node in path))


@categories_cli.command("create")
@click.argument("name")
@click.option("--slug", default=None)
@click.option("--parent", "parent_id", default=None)
@click.option("--sort-order", type=int, default=0)
@click.option("--inactive", is_flag=True)
def create_command(name: str, slug: str | None, parent_id: str | None, sort_order: int, inactive: bool) -> None:
    try:
        payload = CategoryCreate(
            name=name,
            slug=slug,
            parent_id=parent_id,
            sort_order=sort_order,
            is_active=not inactive,
        )
    except ValidationError as e:
        raise click.ClickException("; ".join(err["msg"] for err in e.errors()))
    try:
        node = get_category_engine().create(payload)
    except CategoryError as e:
        raise _fail(e)
    invalidate_tree_cache()
    click.echo(f"Created {node.slug} ({node.id})")


@categories_cli.command("move")
@click.argument("category_id")
@click.option("--parent", "parent_id", default=None, help="New parent id; omit to make it a root.")
@click.option("--sort-order", type=int, default=None)
def move_command(category_id: str, parent_id: str | None, sort_order: int | None) -> None:
    try:
        node = get_category_engine().move(category_id, parent_id or None, sort_order)
    except CategoryError as e:
        raise _fail(e)
    invalidate_tree_cache()
    click.echo(f"Moved {node.slug} under {node.parent_id or 'root'}")


@categories_cli.command("delete")
@click.argument("category_id")
def delete_command(category_id: str) -> None:
    try:
        get_category_engine().delete(category_id)
    except CategoryError as e:
        raise _fail(e)
    invalidate_tree_cache()
    click.echo("Category deleted")


@categories_cli.command("link-product")
@click.argument("category_id")
@click.argument("product_id")
@click.option("--primary", is_flag=True)
def link_product_command(category_id: str, product_id: str, primary: bool) -> None:
    engine = get_category_engine()
    try:
        engine.get(category_id)
    except CategoryError as e:
        raise _fail(e)
    with engine.store.transaction():
        engine.store.link_item(category_id, product_id, is_primary=primary)
    invalidate_tree_cache()
    click.echo(f"Linked product {product_id} to {category_id}")


@categories_cli.command("init-db")
def init_db_command() -> None:
    """Create tables directly (development only; use migrations elsewhere)."""
    db.create_all()
    click.echo("Tables created")
