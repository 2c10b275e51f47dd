#!/usr/bin/env python3
"""
本地跑一次完整求职流水线：保存简历 → 启动运行 → 等待完成 → 打印排序结果。
用法: python scripts/run_job_search.py <简历文件路径> [--user local-user] [--tier free|pro] [--timeout 600]
需先用 scripts/ingest_jobs.py 入库职位，并在 .env 中配置模型 API Key 与 HIREPATH_DEFAULT_MODEL。
"""
import argparse
import asyncio
import sys
from pathlib import Path

from hirepath.core.config import configure_logging
from hirepath.files import LocalFileStorage
from hirepath.workflow import create_default_orchestrator


async def run(path: Path, user_id: str, tier: str, timeout: float) -> int:
    file_ref = LocalFileStorage().save(path.read_bytes(), path.name)
    orchestrator = create_default_orchestrator()
    started = await orchestrator.start_workflow(file_ref, user_id, tier)
    print(f"运行 ID: {started.workflow_run_id}，进度 ID: {started.tracking_id}\n")

    status = await orchestrator.wait(started.workflow_run_id, timeout=timeout)
    progress = await orchestrator.get_progress(started.tracking_id, user_id)
    if progress is not None:
        print(f"进度: {progress.stage} {progress.display_percentage}%")
    print(f"状态: {status.type}")
    if status.type != "completed":
        print(f"错误: {status.error or '-'}")
        return 1

    saved = await orchestrator.get_saved_results(started.workflow_run_id, user_id)
    if saved is None:
        print("未找到保存的结果")
        return 1
    summary = saved.summary
    print(f"共找到 {summary.total_found} 条，相关 {summary.total_relevant} 条，平均匹配分 {summary.avg_match_score:.2f}")
    print(f"热门技能: {', '.join(summary.top_skills_in_demand) or '-'}")
    print(f"薪资: {summary.salary_insights or '-'}")
    print(f"市场: {summary.market_observations or '-'}\n")
    for i, job in enumerate(saved.jobs, 1):
        listing = job.listing
        print(f"--- #{i} {listing.title} @ {listing.company or '-'} ---")
        print(f"地点: {listing.location or '-'}（{job.location_match}）")
        print(f"匹配分: {job.match_score} | 推荐: {job.ai_recommendation}")
        print(f"命中技能: {', '.join(job.matched_skills) or '-'} | 缺失: {', '.join(job.missing_skills) or '-'}")
        print(f"链接: {listing.source_url}\n")
    return 0


def main():
    parser = argparse.ArgumentParser(description="本地跑一次求职流水线")
    parser.add_argument("cv", help="简历文件路径（PDF / Word 等）")
    parser.add_argument("--user", default="local-user", help="用户 ID")
    parser.add_argument("--tier", choices=["free", "pro"], default="free", help="档位（决定保留的职位数）")
    parser.add_argument("--timeout", type=float, default=600.0, help="等待秒数")
    args = parser.parse_args()

    path = Path(args.cv)
    if not path.exists():
        print(f"文件不存在: {path}")
        sys.exit(1)
    configure_logging()
    sys.exit(asyncio.run(run(path, args.user, args.tier, args.timeout)))


if __name__ == "__main__":
    main()
