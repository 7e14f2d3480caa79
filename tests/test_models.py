from dubstats.models.commands import CommandMessage, StatsArgs
from dubstats.models.registry import PackageInfo, PackageStats


def test_package_stats_model_defaults_missing_counters():
    s = PackageStats.model_validate({"downloads": {"total": 12}, "score": 1.5, "updatedAt": "2021-10-11"})
    assert s.downloads.total == 12
    assert s.downloads.weekly == 0
    assert s.repo.stars == 0
    assert s.score == 1.5


def test_package_info_model_reads_commit_alias():
    i = PackageInfo.model_validate({"version": "1.0.0", "commitID": "abc", "info": {"name": "x"}})
    assert i.version == "1.0.0"
    assert i.commit_id == "abc"


def test_command_message_model():
    c = CommandMessage(command="update_package_list")
    assert c.command == "update_package_list"
    assert c.args is None
    assert StatsArgs().limit is None
