import os.path as op
import click


def validate_csv(ctx, param, value, default_column):
    """
    Split a 'path::column' argument into a path and a column name,
    falling back to 'default_column' when no column is given.
    """
    if value is None:
        return
    file_path, _, field_name = value.partition("::")
    if not op.exists(file_path):
        raise click.BadParameter(
            'Path not found: "{}"'.format(file_path), ctx=ctx, param=param
        )
    if not field_name:
        field_name = default_column
    return file_path, field_name


def format_members(clusters_df):
    """Members of clusters as comma-separated strings, for text output."""
    return clusters_df.assign(
        members=clusters_df["members"].map(lambda m: ",".join(map(str, m)))
    )
